"""
Tools Node

Resolves every pending tool call of the last assistant message and appends
one ToolMessage per call, in call order. Failures become error content so
the model can react to them.
"""
import asyncio

from langchain_core.callbacks.manager import adispatch_custom_event
from langchain_core.messages import ToolMessage
from langchain_core.runnables import RunnableConfig

from chatagent.agent.state import ConversationState, TurnContext
from chatagent.logging import log_node_result, log_node_start
from chatagent.tools.invocation import invoke_tool
from chatagent.tools.registry import ToolDescriptor

TOOL_START_EVENT = "tool_start"
TOOL_END_EVENT = "tool_end"


async def dispatch_tool_event(name: str, data: dict, config: RunnableConfig | None) -> None:
    """Emit a custom event to astream_events listeners, if there are any."""
    if config and config.get("callbacks") is not None:
        await adispatch_custom_event(name, data, config=config)


async def _run_call(
    call: dict,
    tool_map: dict[str, ToolDescriptor],
    context: TurnContext,
    config: RunnableConfig | None,
) -> ToolMessage:
    name = call.get("name", "")
    call_id = call.get("id") or ""
    descriptor = tool_map.get(name)
    if descriptor is None:
        available = ", ".join(tool_map) or "none"
        return ToolMessage(
            content=f"Tool '{name}' not found or not available. Available tools: {available}",
            tool_call_id=call_id,
            name=name,
            status="error",
        )

    await dispatch_tool_event(TOOL_START_EVENT, {"name": name, "id": call_id, "args": call.get("args") or {}}, config)
    result = await invoke_tool(descriptor, call.get("args") or {}, context)
    await dispatch_tool_event(
        TOOL_END_EVENT,
        {"name": name, "id": call_id, "output": result.content, "is_error": result.is_error},
        config,
    )
    return ToolMessage(
        content=result.content,
        tool_call_id=call_id,
        name=name,
        status="error" if result.is_error else "success",
    )


def make_tools_node(tool_map: dict[str, ToolDescriptor], context: TurnContext):
    """Create the node that executes pending tool calls against `tool_map`."""

    async def tools_node(state: ConversationState, config: RunnableConfig) -> dict:
        last = state.messages[-1] if state.messages else None
        calls = getattr(last, "tool_calls", None) or []
        log_node_start("tools", ", ".join(call.get("name", "") for call in calls))

        results = await asyncio.gather(
            *(_run_call(call, tool_map, context, config) for call in calls)
        )

        log_node_result("tools", {"results": len(results), "errors": sum(r.status == "error" for r in results)})
        return {"messages": list(results)}

    return tools_node
