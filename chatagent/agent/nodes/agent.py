"""
Agent Node

Calls the model with the bound tool set on the provider-normalized
conversation and appends its reply.
"""
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage

from chatagent.agent.normalize import normalize_messages
from chatagent.agent.providers import Provider
from chatagent.agent.state import AgentSpec, ConversationState, TurnContext
from chatagent.errors import ChatAgentError, ModelInvocationError
from chatagent.logging import log_node_result, log_node_start


async def invoke_model(model, messages: list[BaseMessage]) -> AIMessage:
    """Call a chat model, normalizing provider failures."""
    try:
        return await model.ainvoke(messages)
    except ChatAgentError:
        raise
    except Exception as e:
        raise ModelInvocationError(type(e).__name__, str(e)) from e


def make_agent_node(
    model: BaseChatModel,
    provider: Provider,
    context: TurnContext,
    agent: AgentSpec | None = None,
    system_prompt: str | None = None,
    node_name: str = "agent",
):
    """
    Create the node that runs one model step.

    Args:
        model: Chat model with tools already bound
        provider: Provider the model belongs to, drives normalization
        context: Request-scoped turn data (history, custom instruction, documents)
        agent: Active agent, if any
        system_prompt: Overrides the agent's prompt (supervisor prompt)
        node_name: Name used in logs
    """
    prompt = system_prompt
    if prompt is None and agent is not None:
        prompt = agent.system_prompt

    async def agent_node(state: ConversationState) -> dict:
        log_node_start(node_name, context.query)

        messages = normalize_messages(
            context.history,
            state.messages,
            provider,
            agent_system_prompt=prompt,
            custom_instruction=context.custom_instruction,
            rag_context=context.rag_context,
        )
        response = await invoke_model(model, messages)

        tool_calls = [call["name"] for call in getattr(response, "tool_calls", None) or []]
        log_node_result(node_name, {"tool_calls": tool_calls, "chars": len(str(response.content))})
        return {"messages": [response]}

    return agent_node
