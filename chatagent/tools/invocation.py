"""
Tool invocation with retry, timeout and output serialization.

Every failure is turned into a readable string so the model can see what
went wrong and the graph keeps running.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from chatagent.errors import ToolArgumentError, ToolTimeoutError, is_authentication_error
from chatagent.logging import log_retry, log_tool_call, log_tool_result
from chatagent.tools.registry import ToolDescriptor, ToolOrigin


@dataclass
class ToolResult:
    content: str
    is_error: bool = False


def serialize_tool_output(output: Any) -> str:
    """Render whatever a tool returned as the text handed back to the model."""
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, dict):
        for key in ("content", "text"):
            if isinstance(output.get(key), str):
                return output[key]
        return json.dumps(output, default=str)
    if isinstance(output, (list, tuple)):
        # MCP content blocks: [{"type": "text", "text": "..."}]
        if output and all(isinstance(b, dict) and b.get("type") == "text" for b in output):
            return "\n".join(str(b.get("text", "")) for b in output)
        return json.dumps(list(output), default=str)
    return str(output)


def _is_retryable(exc: BaseException) -> bool:
    # wait_for cancels the running attempt once the overall deadline passes
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, (ToolArgumentError, ToolTimeoutError, asyncio.TimeoutError)):
        return False
    return not is_authentication_error(exc)


async def _attempt(descriptor: ToolDescriptor, args: dict, context: Any, wait=None) -> Any:
    policy = descriptor.retry

    def before_sleep(retry_state):
        log_retry(
            descriptor.name,
            retry_state.attempt_number,
            policy.max_attempts,
            retry_state.outcome.exception(),
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    result = None
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait or wait_exponential(multiplier=policy.initial_backoff, min=policy.initial_backoff),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep,
        reraise=True,
    ):
        with attempt:
            result = await descriptor.invoke(args, context)
    return result


async def invoke_tool(
    descriptor: ToolDescriptor,
    args: dict | None,
    context: Any = None,
    wait=None,
) -> ToolResult:
    """
    Run a tool under its retry policy and return its serialized output.

    Args:
        descriptor: The tool to run
        args: Arguments from the model's tool call
        context: Request-scoped TurnContext passed to the tool's prepare hook
        wait: Optional tenacity wait strategy (tests pass wait_none())

    Returns:
        ToolResult with the output text, or an error message with is_error set
    """
    policy = descriptor.retry
    log_tool_call(descriptor.name, args or {})

    try:
        if policy.timeout:
            output = await asyncio.wait_for(
                _attempt(descriptor, args or {}, context, wait), timeout=policy.timeout
            )
        else:
            output = await _attempt(descriptor, args or {}, context, wait)
    except (asyncio.TimeoutError, ToolTimeoutError):
        message = (
            f"The {descriptor.name} operation timed out after {policy.timeout or 0:g} seconds. "
            "The service may be slow or unavailable, please try again."
        )
        log_tool_result(descriptor.name, message, success=False)
        return ToolResult(message, is_error=True)
    except Exception as e:
        if is_authentication_error(e):
            message = f"Authentication error: {e}"
        elif descriptor.origin is ToolOrigin.DISCOVERED and not isinstance(e, ToolArgumentError):
            message = (
                f"MCP tool '{descriptor.name}' failed after {policy.max_attempts} attempts. "
                f"Last error: {e}"
            )
        else:
            message = f"Error executing tool {descriptor.name}: {e}"
        log_tool_result(descriptor.name, message, success=False)
        return ToolResult(message, is_error=True)

    content = serialize_tool_output(output)
    log_tool_result(descriptor.name, content)
    return ToolResult(content)
