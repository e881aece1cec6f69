"""
Supervisor and tool-agent nodes.

The supervisor sees one delegate function per sub-agent
(`call_tool_agent_{k}`) plus the core tools. A delegated call runs the
sub-agent once on the task and hands its answer back as the call's result.
"""
import re

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage

from chatagent.agent.normalize import message_text
from chatagent.agent.nodes.agent import invoke_model
from chatagent.agent.prompts import (
    DELEGATE_TASK_DESCRIPTION,
    DELEGATE_TOOL_DESCRIPTION,
    DELEGATED_TASK_SUFFIX,
    SIBLING_NOT_EXECUTED,
    SUB_AGENT_DEFAULT_PROMPT,
    SUPERVISOR_AGENT_LINE,
    SUPERVISOR_AGENTS_HEADER,
    SUPERVISOR_DEFAULT_PROMPT,
    SUPERVISOR_DELEGATION_INSTRUCTION,
)
from chatagent.agent.state import AgentSpec, ConversationState, TurnContext
from chatagent.logging import log_decision, log_node_result, log_node_start
from chatagent.tools.builtin import CORE_TOOL_NAMES

DELEGATE_PREFIX = "call_tool_agent_"
DELEGATE_PATTERN = re.compile(r"^call_tool_agent_(\d+)$")


def tool_agent_node_name(index: int) -> str:
    return f"tool_agent_{index}"


def _agent_summary(agent: AgentSpec, fallback: str) -> str:
    return agent.description or agent.system_prompt or fallback


def build_supervisor_prompt(supervisor: AgentSpec, sub_agents: list[AgentSpec]) -> str:
    prompt = supervisor.system_prompt or SUPERVISOR_DEFAULT_PROMPT
    prompt += SUPERVISOR_AGENTS_HEADER
    for index, agent in enumerate(sub_agents):
        prompt += SUPERVISOR_AGENT_LINE.format(
            index=index + 1,
            title=agent.title,
            description=_agent_summary(agent, "No description available"),
        )
    return prompt + SUPERVISOR_DELEGATION_INSTRUCTION


def delegate_tool_specs(sub_agents: list[AgentSpec]) -> list[dict]:
    """One function spec per sub-agent taking a single `task` string."""
    return [
        {
            "type": "function",
            "function": {
                "name": f"{DELEGATE_PREFIX}{index}",
                "description": DELEGATE_TOOL_DESCRIPTION.format(
                    title=agent.title,
                    description=_agent_summary(agent, "Tool agent"),
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "task": {"type": "string", "description": DELEGATE_TASK_DESCRIPTION}
                    },
                    "required": ["task"],
                },
            },
        }
        for index, agent in enumerate(sub_agents)
    ]


def route_supervisor(state: ConversationState, agent_count: int) -> str:
    """
    Route on the first tool call of the supervisor's reply.

    Returns a `tool_agent_{k}` node name, "tools" for core tools, else "end".
    """
    last = state.messages[-1] if state.messages else None
    calls = getattr(last, "tool_calls", None) or []
    if not calls:
        log_decision("END", "no tool calls")
        return "end"

    name = calls[0].get("name", "")
    match = DELEGATE_PATTERN.match(name)
    if match and int(match.group(1)) < agent_count:
        log_decision(tool_agent_node_name(int(match.group(1))), f"delegated by {name}")
        return tool_agent_node_name(int(match.group(1)))
    if name in CORE_TOOL_NAMES:
        log_decision("tools", name)
        return "tools"

    log_decision("END", f"unroutable tool call {name}")
    return "end"


def make_sub_agent_node(model: BaseChatModel, sub_agent: AgentSpec, index: int, context: TurnContext):
    """Create the node that runs one sub-agent on a delegated task."""
    node_name = tool_agent_node_name(index)

    async def sub_agent_node(state: ConversationState) -> dict:
        last = state.messages[-1]
        calls = last.tool_calls
        call = calls[0]
        task = (call.get("args") or {}).get("task") or context.query
        log_node_start(node_name, task)

        system = (sub_agent.system_prompt or SUB_AGENT_DEFAULT_PROMPT) + DELEGATED_TASK_SUFFIX.format(task=task)
        try:
            reply = await invoke_model(model, [SystemMessage(content=system), HumanMessage(content=task)])
            content = message_text(reply.content)
            status = "success"
        except Exception as e:
            content = f"Error executing tool agent {sub_agent.title or index}: {e}"
            status = "error"

        results = [ToolMessage(content=content, tool_call_id=call.get("id") or "", name=call.get("name"), status=status)]
        for sibling in calls[1:]:
            results.append(ToolMessage(
                content=SIBLING_NOT_EXECUTED.format(executed=call.get("name"), name=sibling.get("name")),
                tool_call_id=sibling.get("id") or "",
                name=sibling.get("name"),
                status="error",
            ))

        log_node_result(node_name, {"status": status, "chars": len(content)})
        return {"messages": results}

    return sub_agent_node
