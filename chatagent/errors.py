"""
Exception types shared across the agent, tools and session layers.
"""

# Substrings a connector server uses to signal that the user must re-authorize.
AUTH_ERROR_MARKERS = (
    "Authentication required",
    "re-authenticate",
    "Invalid Credentials",
)


class ChatAgentError(Exception):
    """Base class for all chat agent errors."""


class ConfigurationError(ChatAgentError):
    """Unknown provider, missing API key or similar. Fatal to the request."""


class ModelInvocationError(ChatAgentError):
    """The language model call failed."""

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message


class ToolExecutionError(ChatAgentError):
    """A tool invocation failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message


class ToolArgumentError(ToolExecutionError):
    """Arguments did not match the tool's input schema."""


class ToolAuthenticationError(ToolExecutionError):
    """The tool's backing service rejected the user's credentials."""


class ToolTimeoutError(ToolExecutionError):
    """The tool did not finish within its overall deadline."""


class SupervisorConstructionError(ChatAgentError):
    """A supervisor graph could not be assembled from its sub-agents."""


def is_authentication_error(exc: BaseException) -> bool:
    """True when an exception means the user has to re-authorize a connector."""
    if isinstance(exc, ToolAuthenticationError):
        return True
    text = str(exc)
    return any(marker in text for marker in AUTH_ERROR_MARKERS)
