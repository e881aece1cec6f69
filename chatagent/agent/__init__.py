"""
Conversation execution graph.

Usage:
    from chatagent.agent import build_graph, ConversationState, TurnContext

    graph = build_graph(model, provider, context, bound_tools, tool_map, agent=agent)
    async for event in graph.astream_events({"messages": [user_message]}, version="v2"):
        ...

The streaming session that drives the graph lives in `chatagent.agent.session`.
"""
from chatagent.agent.graph import build_graph, build_tool_map
from chatagent.agent.state import AgentSpec, ChatRequest, ConversationState, TurnContext

__all__ = [
    "build_graph",
    "build_tool_map",
    "AgentSpec",
    "ChatRequest",
    "ConversationState",
    "TurnContext",
]
