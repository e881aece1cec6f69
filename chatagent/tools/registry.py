"""
Tool registry and tool descriptors.

Every tool the agent can call, whether built in, discovered from the MCP
connector server or attached to a configured agent, is wrapped in a
`ToolDescriptor`: a name, a description, a JSON input schema, an async
callable and the retry policy for its origin.

Built-in tools use the @registry.register() decorator, which wraps the
function with langchain's @tool to derive the schema from its signature.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from langchain_core.tools import tool as langchain_tool
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from chatagent.errors import ToolArgumentError


class ToolOrigin(str, Enum):
    BUILTIN = "builtin"
    DISCOVERED = "discovered"
    AGENT = "agent"


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a tool is attempted and how long the whole call may take."""
    max_attempts: int = 1
    initial_backoff: float = 1.0
    timeout: float | None = None

    @classmethod
    def for_origin(cls, origin: ToolOrigin, timeout: float | None = None) -> "RetryPolicy":
        # Connector tools go over the network to third-party APIs
        if origin is ToolOrigin.DISCOVERED:
            return cls(max_attempts=3, initial_backoff=1.0, timeout=timeout)
        return cls(timeout=timeout)


_JSON_TYPES = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}


def _union(members: list) -> Any:
    if not members:
        return Any
    if len(members) == 1:
        return members[0]
    return Union[tuple(members)]


def _annotation_for(prop: dict) -> Any:
    """Map a JSON-schema property to a python type annotation.

    Type arrays (["string", "null"]) and anyOf/oneOf become unions; a "null"
    member makes the annotation Optional. Anything unrecognized is Any.
    """
    json_type = prop.get("type")
    if isinstance(json_type, list):
        members = [_annotation_for({**prop, "type": t}) for t in json_type if t != "null"]
        annotation = _union(members)
        return Optional[annotation] if "null" in json_type else annotation

    variants = prop.get("anyOf") or prop.get("oneOf")
    if json_type is None and isinstance(variants, list):
        variants = [v for v in variants if isinstance(v, dict)]
        annotation = _union([_annotation_for(v) for v in variants if v.get("type") != "null"])
        if any(v.get("type") == "null" for v in variants):
            return Optional[annotation]
        return annotation

    if not isinstance(json_type, str):
        return Any
    if json_type in _JSON_TYPES:
        return _JSON_TYPES[json_type]
    if json_type == "array":
        items = prop.get("items")
        return list[_annotation_for(items)] if isinstance(items, dict) and items else list
    if json_type == "object":
        return dict[str, Any]
    return Any


def args_model_from_schema(name: str, schema: dict) -> type[BaseModel]:
    """Build a pydantic model that validates a tool's JSON-schema arguments.

    Field names are positional with the property name as alias, so schema
    properties like "schema" or "model_config" cannot clash with BaseModel.
    """
    required = set(schema.get("required") or [])
    fields = {}
    for index, (key, prop) in enumerate((schema.get("properties") or {}).items()):
        annotation = _annotation_for(prop or {})
        if key in required:
            fields[f"field_{index}"] = (annotation, Field(..., alias=key))
        else:
            fields[f"field_{index}"] = (Optional[annotation], Field(None, alias=key))
    return create_model(
        f"{name}_args",
        __config__=ConfigDict(extra="ignore", populate_by_name=False),
        **fields,
    )


@dataclass
class ToolDescriptor:
    """A callable tool with its schema and invocation policy."""
    name: str
    description: str
    schema: dict
    func: Callable[[dict], Awaitable[Any]]
    origin: ToolOrigin = ToolOrigin.BUILTIN
    retry: RetryPolicy | None = None
    category: str = "core"
    # Adds request-scoped values (user id, API key) to validated arguments
    prepare: Callable[[dict, Any], dict] | None = None
    _args_model: type[BaseModel] | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.retry is None:
            self.retry = RetryPolicy.for_origin(self.origin)

    def as_tool_spec(self) -> dict:
        """OpenAI-style function spec, accepted by every provider's bind_tools."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema or {"type": "object", "properties": {}},
            },
        }

    def validate_args(self, args: dict | None) -> dict:
        if self._args_model is None:
            self._args_model = args_model_from_schema(self.name, self.schema or {})
        try:
            parsed = self._args_model.model_validate(args or {})
        except ValidationError as e:
            raise ToolArgumentError(self.name, f"Invalid arguments for {self.name}: {e}") from e
        return parsed.model_dump(by_alias=True, exclude_unset=True)

    async def invoke(self, args: dict | None, context: Any = None) -> Any:
        """Validate arguments, inject request context and run the tool once."""
        payload = self.validate_args(args)
        if self.prepare is not None:
            payload = self.prepare(payload, context)
        return await self.func(payload)


class ToolRegistry:
    """
    Registry for the built-in tools.

    Usage:
        @registry.register(category="utility")
        async def get_current_time() -> str:
            '''Get the current date and time.'''
            ...
    """

    def __init__(self):
        self._tools: dict[str, ToolDescriptor] = {}

    def register(self, category: str = "core", prepare: Callable[[dict, Any], dict] | None = None):
        """
        Decorator to register a tool with the registry.

        Args:
            category: Tool family, e.g. "search" or "utility"
            prepare: Optional hook that injects request context into the arguments
        """
        def decorator(func):
            lc_tool = langchain_tool(func)
            schema = lc_tool.tool_call_schema.model_json_schema()

            async def call(payload: dict) -> Any:
                return await lc_tool.ainvoke(payload)

            self._tools[lc_tool.name] = ToolDescriptor(
                name=lc_tool.name,
                description=lc_tool.description,
                schema=schema,
                func=call,
                origin=ToolOrigin.BUILTIN,
                category=category,
                prepare=prepare,
            )
            return lc_tool
        return decorator

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def get_all_tools(self) -> list[ToolDescriptor]:
        """Get all registered tools as a list."""
        return list(self._tools.values())

    def get_tool_map(self) -> dict[str, ToolDescriptor]:
        """Get tool name -> descriptor mapping."""
        return self._tools.copy()


# Global registry instance
registry = ToolRegistry()
