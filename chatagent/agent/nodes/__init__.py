"""Graph node implementations."""
from chatagent.agent.nodes.agent import make_agent_node, invoke_model
from chatagent.agent.nodes.tools import make_tools_node, TOOL_START_EVENT, TOOL_END_EVENT
from chatagent.agent.nodes.supervisor import (
    make_sub_agent_node,
    route_supervisor,
    build_supervisor_prompt,
    delegate_tool_specs,
)

__all__ = [
    "make_agent_node",
    "invoke_model",
    "make_tools_node",
    "TOOL_START_EVENT",
    "TOOL_END_EVENT",
    "make_sub_agent_node",
    "route_supervisor",
    "build_supervisor_prompt",
    "delegate_tool_specs",
]
