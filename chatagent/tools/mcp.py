"""
Connector tools discovered from the MCP server.

Each operation opens a short-lived SSE session with the connector server.
Discovery is retried with exponential backoff and the result, even an empty
one, is cached for MCP_CACHE_TTL so a down server is not hammered on every
request.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Callable

from mcp import ClientSession
from mcp.client.sse import sse_client
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from chatagent.cache import TTLCache
from chatagent.config import Settings, get_settings
from chatagent.errors import ToolExecutionError
from chatagent.tools.registry import RetryPolicy, ToolDescriptor, ToolOrigin

_CACHE_KEY = "mcp_tools"

# Used when the server publishes a tool without any input properties
FALLBACK_SCHEMA = {
    "type": "object",
    "properties": {
        "mcp_data": {
            "type": "string",
            "description": "Optional data passed through to the connector",
        }
    },
    "required": [],
}

_tool_cache = TTLCache(ttl=get_settings().MCP_CACHE_TTL)


class MCPConnector:
    """Client for the connector server's SSE endpoint."""

    def __init__(self, url: str, connect_timeout: float = 30.0):
        self.url = url
        self.connect_timeout = connect_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MCPConnector":
        return cls(
            f"{settings.MCP_SERVER_URL.rstrip('/')}/mcp-event",
            connect_timeout=settings.MCP_DISCOVERY_TIMEOUT,
        )

    @asynccontextmanager
    async def session(self):
        async with sse_client(self.url, timeout=self.connect_timeout) as (read, write):
            async with ClientSession(read, write) as session:
                await session.initialize()
                yield session

    async def list_tools(self) -> list:
        async with self.session() as session:
            result = await session.list_tools()
        return list(result.tools)

    async def call_tool(self, name: str, arguments: dict) -> str:
        async with self.session() as session:
            result = await session.call_tool(name, arguments)
        text = "\n".join(
            block.text for block in result.content if getattr(block, "type", None) == "text"
        )
        if result.isError:
            raise ToolExecutionError(name, text or f"{name} reported an error")
        return text


def inject_user(args: dict, context: Any) -> dict:
    """Connector calls act on behalf of a user: mcp_data wins over the request user."""
    payload = dict(args)
    mcp_data = payload.pop("mcp_data", None)
    if mcp_data:
        payload["user_id"] = mcp_data
    elif getattr(context, "user_id", None):
        payload["user_id"] = context.user_id
    return payload


def _schema_of(tool) -> dict:
    schema = getattr(tool, "inputSchema", None)
    if not schema or not schema.get("properties"):
        return dict(FALLBACK_SCHEMA)
    return schema


def wrap_mcp_tool(tool, connector: MCPConnector, timeout: float) -> ToolDescriptor:
    """Describe a published MCP tool with the connector retry policy."""

    async def call(payload: dict) -> str:
        return await connector.call_tool(tool.name, payload)

    return ToolDescriptor(
        name=tool.name,
        description=tool.description or "",
        schema=_schema_of(tool),
        func=call,
        origin=ToolOrigin.DISCOVERED,
        retry=RetryPolicy.for_origin(ToolOrigin.DISCOVERED, timeout=timeout),
        category="connector",
        prepare=inject_user,
    )


async def discover_mcp_tools(
    connector: MCPConnector | None = None,
    settings: Settings | None = None,
    wait=None,
) -> list[ToolDescriptor]:
    """
    Fetch the connector tool list from the MCP server.

    Returns an empty list when the server stays unreachable after all attempts.
    """
    settings = settings or get_settings()
    connector = connector or MCPConnector.from_settings(settings)
    raw_tools = []
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.MCP_DISCOVERY_ATTEMPTS),
            wait=wait or wait_exponential(multiplier=1, min=1),
            before_sleep=lambda state: print(
                f"  [MCP] Discovery attempt {state.attempt_number} failed: {state.outcome.exception()}"
            ),
            reraise=True,
        ):
            with attempt:
                raw_tools = await asyncio.wait_for(
                    connector.list_tools(), timeout=settings.MCP_DISCOVERY_TIMEOUT
                )
    except Exception as e:
        print(f"  [MCP] Tool discovery failed, continuing without connector tools: {e}")
        return []

    tools = [
        wrap_mcp_tool(tool, connector, settings.MCP_TOOL_TIMEOUT)
        for tool in raw_tools
        if getattr(tool, "name", None)
    ]
    print(f"  [MCP] Discovered {len(tools)} connector tools")
    return tools


async def get_cached_mcp_tools(
    cache: TTLCache | None = None,
    discover: Callable = discover_mcp_tools,
) -> list[ToolDescriptor]:
    """Discovered connector tools, refreshed at most once per TTL."""
    cache = cache or _tool_cache
    return await cache.get_or_create(_CACHE_KEY, discover)
