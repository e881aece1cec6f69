"""
LangGraph execution graphs.

Single agent:
```
START → agent → [tool calls?] ──no──→ END
          ↑          │
          │         yes
          │          ▼
          └──────── tools
```

Supervisor:
```
START → supervisor → [first tool call]
          ↑   ↑         ├── call_tool_agent_k → tool_agent_k ─┐
          │   │         ├── core tool ────────→ tools ───────┐│
          │   │         └── anything else ────→ END          ││
          │   └──────────────────────────────────────────────┘│
          └───────────────────────────────────────────────────┘
```

Graphs are compiled per request; the step limit is applied by the caller
through `recursion_limit`.
"""
from typing import Literal

from langchain_core.language_models import BaseChatModel
from langgraph.graph import END, StateGraph

from chatagent.agent.nodes import (
    build_supervisor_prompt,
    delegate_tool_specs,
    make_agent_node,
    make_sub_agent_node,
    make_tools_node,
    route_supervisor,
)
from chatagent.agent.nodes.supervisor import tool_agent_node_name
from chatagent.agent.providers import Provider, bind_model_tools
from chatagent.agent.state import AgentSpec, ConversationState, TurnContext
from chatagent.errors import SupervisorConstructionError
from chatagent.logging import log_decision, log_error
from chatagent.tools.builtin import get_core_tools
from chatagent.tools.registry import ToolDescriptor, registry


def route_after_agent(state: ConversationState) -> Literal["tools", "end"]:
    """Route to tools while the model keeps asking for them."""
    last = state.messages[-1] if state.messages else None
    if getattr(last, "tool_calls", None):
        log_decision("tools", f"{len(last.tool_calls)} tool call(s)")
        return "tools"
    log_decision("END", "final answer")
    return "end"


def build_tool_map(
    discovered: list[ToolDescriptor] | None = None,
    agent: AgentSpec | None = None,
) -> dict[str, ToolDescriptor]:
    """Every tool callable this turn: built-ins, connector tools, then agent tools."""
    tool_map = registry.get_tool_map()
    for descriptor in discovered or []:
        tool_map[descriptor.name] = descriptor
    if agent is not None:
        for descriptor in agent.bound_tools:
            tool_map[descriptor.name] = descriptor
    return tool_map


def build_agent_graph(
    model: BaseChatModel,
    provider: Provider,
    context: TurnContext,
    bound_tools: list[ToolDescriptor],
    tool_map: dict[str, ToolDescriptor],
    agent: AgentSpec | None = None,
    entry: str = "agent",
):
    """Compile the agent ⇄ tools loop."""
    bound_model = bind_model_tools(model, [t.as_tool_spec() for t in bound_tools])

    workflow = StateGraph(ConversationState)
    workflow.add_node(entry, make_agent_node(bound_model, provider, context, agent=agent, node_name=entry))
    workflow.add_node("tools", make_tools_node(tool_map, context))
    workflow.set_entry_point(entry)
    workflow.add_conditional_edges(
        entry,
        route_after_agent,
        {
            "tools": "tools",
            "end": END,
        }
    )
    workflow.add_edge("tools", entry)
    return workflow.compile()


def build_supervisor_graph(
    model: BaseChatModel,
    provider: Provider,
    context: TurnContext,
    supervisor: AgentSpec,
    sub_agents: list[AgentSpec | None],
    tool_map: dict[str, ToolDescriptor],
):
    """
    Compile the supervisor graph.

    Raises:
        SupervisorConstructionError: when a sub-agent could not be resolved
    """
    if not sub_agents:
        raise SupervisorConstructionError("Supervisor has no sub-agents")
    missing = [supervisor.sub_agent_ids[i] for i, a in enumerate(sub_agents) if a is None]
    if missing:
        raise SupervisorConstructionError(f"Unresolved sub-agents: {missing}")

    core_tools = get_core_tools()
    bound_model = bind_model_tools(
        model, delegate_tool_specs(sub_agents) + [t.as_tool_spec() for t in core_tools]
    )

    workflow = StateGraph(ConversationState)
    workflow.add_node(
        "supervisor",
        make_agent_node(
            bound_model,
            provider,
            context,
            agent=supervisor,
            system_prompt=build_supervisor_prompt(supervisor, sub_agents),
            node_name="supervisor",
        ),
    )
    workflow.add_node("tools", make_tools_node(tool_map, context))
    for index, sub_agent in enumerate(sub_agents):
        workflow.add_node(tool_agent_node_name(index), make_sub_agent_node(model, sub_agent, index, context))
    workflow.set_entry_point("supervisor")

    routes = {tool_agent_node_name(i): tool_agent_node_name(i) for i in range(len(sub_agents))}
    routes["tools"] = "tools"
    routes["end"] = END
    agent_count = len(sub_agents)
    workflow.add_conditional_edges(
        "supervisor",
        lambda state: route_supervisor(state, agent_count),
        routes,
    )

    for index in range(len(sub_agents)):
        workflow.add_edge(tool_agent_node_name(index), "supervisor")
    workflow.add_edge("tools", "supervisor")
    return workflow.compile()


def build_graph(
    model: BaseChatModel,
    provider: Provider,
    context: TurnContext,
    bound_tools: list[ToolDescriptor],
    tool_map: dict[str, ToolDescriptor],
    agent: AgentSpec | None = None,
    sub_agents: list[AgentSpec | None] | None = None,
):
    """
    Compile the graph for one request.

    A supervisor whose graph cannot be built (for example because a sub-agent
    id did not resolve) runs as a single agent with its own prompt and tools;
    the entry node keeps the name "supervisor".
    """
    if agent is not None and agent.is_supervisor:
        try:
            return build_supervisor_graph(model, provider, context, agent, sub_agents or [], tool_map)
        except Exception as e:
            log_error("Supervisor graph construction failed, falling back to single agent", e)
            return build_agent_graph(
                model, provider, context, bound_tools, tool_map, agent=agent, entry="supervisor"
            )
    return build_agent_graph(model, provider, context, bound_tools, tool_map, agent=agent)
