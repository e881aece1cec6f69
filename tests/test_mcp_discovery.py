from types import SimpleNamespace

from tenacity import wait_none

from chatagent.cache import TTLCache
from chatagent.tools.mcp import (
    FALLBACK_SCHEMA,
    discover_mcp_tools,
    get_cached_mcp_tools,
    inject_user,
)
from chatagent.tools.registry import ToolOrigin
from tests.conftest import make_settings


def published(name, description="", schema=None):
    return SimpleNamespace(name=name, description=description, inputSchema=schema)


class FakeConnector:
    def __init__(self, tools=None, failures=0):
        self.tools = tools or []
        self.failures = failures
        self.list_calls = 0
        self.calls = []

    async def list_tools(self):
        self.list_calls += 1
        if self.list_calls <= self.failures:
            raise ConnectionError("server unavailable")
        return self.tools

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        return f"{name} done"


SLACK_SCHEMA = {
    "type": "object",
    "properties": {"channel": {"type": "string"}},
    "required": ["channel"],
}


async def test_discovery_retries_then_wraps_tools():
    connector = FakeConnector([published("send_slack_message", "Send a message", SLACK_SCHEMA)], failures=2)
    settings = make_settings(MCP_TOOL_TIMEOUT=45)

    tools = await discover_mcp_tools(connector, settings, wait=wait_none())

    assert connector.list_calls == 3
    assert [t.name for t in tools] == ["send_slack_message"]
    tool = tools[0]
    assert tool.origin is ToolOrigin.DISCOVERED
    assert tool.retry.max_attempts == 3
    assert tool.retry.timeout == 45
    assert tool.schema == SLACK_SCHEMA


async def test_unreachable_server_yields_no_tools():
    connector = FakeConnector(failures=10)

    tools = await discover_mcp_tools(connector, make_settings(), wait=wait_none())

    assert tools == []
    assert connector.list_calls == 3


async def test_tools_without_properties_get_fallback_schema():
    connector = FakeConnector([published("get_zoom_user_info", schema={"type": "object", "properties": {}})])

    tools = await discover_mcp_tools(connector, make_settings(), wait=wait_none())

    assert tools[0].schema == FALLBACK_SCHEMA


async def test_unnamed_tools_are_skipped():
    connector = FakeConnector([published(""), published("list_calendars", schema=SLACK_SCHEMA)])

    tools = await discover_mcp_tools(connector, make_settings(), wait=wait_none())

    assert [t.name for t in tools] == ["list_calendars"]


async def test_wrapped_tool_calls_connector_with_user():
    connector = FakeConnector([published("send_slack_message", schema=SLACK_SCHEMA)])
    tools = await discover_mcp_tools(connector, make_settings(), wait=wait_none())

    output = await tools[0].invoke({"channel": "general"}, SimpleNamespace(user_id="user-1"))

    assert output == "send_slack_message done"
    assert connector.calls == [("send_slack_message", {"channel": "general", "user_id": "user-1"})]


async def test_empty_discovery_is_cached():
    calls = []

    async def discover():
        calls.append(1)
        return []

    cache = TTLCache(ttl=300)

    assert await get_cached_mcp_tools(cache, discover) == []
    assert await get_cached_mcp_tools(cache, discover) == []
    assert calls == [1]


class TestInjectUser:
    def test_mcp_data_becomes_user_id(self):
        assert inject_user({"mcp_data": "user-7"}, SimpleNamespace(user_id="user-1")) == {"user_id": "user-7"}

    def test_request_user_is_used_otherwise(self):
        assert inject_user({"q": 1}, SimpleNamespace(user_id="user-1")) == {"q": 1, "user_id": "user-1"}

    def test_no_user_available(self):
        assert inject_user({"q": 1}, None) == {"q": 1}
