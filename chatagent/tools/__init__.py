"""Tool definitions, selection and invocation."""
from chatagent.tools.registry import registry, ToolDescriptor, ToolOrigin, RetryPolicy
from chatagent.tools.builtin import CORE_TOOL_NAMES, get_core_tools
from chatagent.tools.invocation import invoke_tool, ToolResult
from chatagent.tools.selector import select_relevant_tools, select_relevant_tools_with_domain_filter

__all__ = [
    "registry",
    "ToolDescriptor",
    "ToolOrigin",
    "RetryPolicy",
    "CORE_TOOL_NAMES",
    "get_core_tools",
    "invoke_tool",
    "ToolResult",
    "select_relevant_tools",
    "select_relevant_tools_with_domain_filter",
]
