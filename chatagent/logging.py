"""
Console tracing for chat turns.

Every line is prefixed with a clock and a colored tag so a turn can be
followed through the graph: node runs, routing, tool calls, retries and
the record that gets persisted.
"""
import json
from datetime import datetime
from typing import Any

RESET = "\033[0m"

# ANSI codes by tag or status
PALETTE = {
    "bold": "\033[1m",
    "dim": "\033[2m",
    "agent": "\033[93m",
    "supervisor": "\033[95m",
    "tools": "\033[96m",
    "toolagent": "\033[94m",
    "session": "\033[92m",
    "ok": "\033[92m",
    "fail": "\033[91m",
    "warn": "\033[93m",
    "plain": "\033[97m",
}

RULE = "-" * 64


def _paint(text: str, style: str) -> str:
    return f"{PALETTE.get(style, '')}{text}{RESET}"


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _style_for(node_name: str) -> str:
    # tool_agent_3 -> toolagent
    key = node_name.lower().replace("_", "").rstrip("0123456789")
    return key if key in PALETTE else "plain"


def _tag(name: str, style: str) -> str:
    return _paint(f"[{name.upper()}]", style)


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _render(value: Any, limit: int = 200) -> str:
    """Compact one-value rendering for log lines."""
    if isinstance(value, (dict, list)):
        try:
            text = json.dumps(value, default=str)
        except (TypeError, ValueError):
            text = repr(value)
    else:
        text = str(value)
    return _clip(text, limit)


def log_header(title: str):
    print(f"\n{RULE}\n{_paint(title, 'bold')}\n{RULE}")


def log_node_start(node_name: str, detail: str = None):
    """Node entered; `detail` is usually the query or the delegated task."""
    line = f"\n{_clock()} {_tag(node_name, _style_for(node_name))} {_paint('running', 'dim')}"
    if detail:
        line += f"  {_clip(detail, 100)}"
    print(line)


def log_node_result(node_name: str, summary: dict):
    fields = ", ".join(f"{key}={_render(value, 80)}" for key, value in summary.items())
    print(f"{_clock()} {_tag(node_name, _style_for(node_name))} {_paint('done', 'ok')} {fields}")


def log_decision(target: str, reason: str = None):
    suffix = f" ({_paint(reason, 'dim')})" if reason else ""
    print(f"  {_paint('route ->', 'bold')} {target}{suffix}")


def log_tool_call(tool_name: str, args: dict):
    print(f"  {_paint('call', 'warn')} {tool_name} {_render(args, 150)}")


def log_tool_result(tool_name: str, output: Any, success: bool = True):
    mark = _paint("ok", "ok") if success else _paint("failed", "fail")
    print(f"  {mark} {tool_name}: {_render(output)}")


def log_retry(tool_name: str, attempt: int, max_attempts: int, error: BaseException, delay: float):
    """An attempt failed and another one is scheduled."""
    print(
        f"  {_paint('retry', 'warn')} {tool_name} {attempt}/{max_attempts} "
        f"in {delay:.1f}s: {_paint(str(error), 'dim')}"
    )


def log_warning(message: str):
    print(f"{_clock()} {_tag('warn', 'warn')} {message}")


def log_error(message: str, exception: BaseException = None):
    print(f"{_clock()} {_tag('error', 'fail')} {message}")
    if exception is not None:
        print(f"  {type(exception).__name__}: {_paint(str(exception), 'fail')}")


def log_turn_summary(conversation_id: str, answer: str, usage: dict, stopped: bool = False):
    """The record about to be saved for a conversation."""
    outcome = _paint("stopped", "warn") if stopped else _paint("finished", "ok")
    print(f"\n{_tag('turn', 'session')} {conversation_id} {outcome}, {len(answer)} chars")
    if usage:
        print(f"  usage: {_render(usage, 150)}")


def log_flow_complete(answer: str = None):
    print(f"\n{_clock()} {_tag('complete', 'ok')} graph finished")
    if answer:
        print(f"  answer: {_clip(answer, 150)}")
    print(RULE)
