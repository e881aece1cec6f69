import asyncio
import json
import time
from types import SimpleNamespace

import httpx
import respx
from tenacity import wait_none

from chatagent.config import get_settings
from chatagent.tools import registry
from chatagent.tools.invocation import invoke_tool, serialize_tool_output
from chatagent.tools.registry import RetryPolicy, ToolOrigin
from tests.fakes import make_tool


def flaky(failures: int, error: Exception):
    calls = []

    async def func(payload: dict) -> str:
        calls.append(payload)
        if len(calls) <= failures:
            raise error
        return "created"

    return func, calls


async def test_discovered_tool_retries_until_success():
    func, calls = flaky(2, ConnectionError("connection reset"))
    tool = make_tool("create_asana_task", func=func)

    result = await invoke_tool(tool, {}, wait=wait_none())

    assert result.content == "created"
    assert not result.is_error
    assert len(calls) == 3


async def test_discovered_tool_exhausting_retries_reports_last_error():
    func, calls = flaky(10, ConnectionError("connection reset"))
    tool = make_tool("create_asana_task", func=func)

    result = await invoke_tool(tool, {}, wait=wait_none())

    assert result.is_error
    assert result.content == "MCP tool 'create_asana_task' failed after 3 attempts. Last error: connection reset"
    assert len(calls) == 3


async def test_authentication_errors_are_not_retried():
    func, calls = flaky(10, RuntimeError("Authentication required: please re-authenticate"))
    tool = make_tool("search_gmail_messages", func=func)

    result = await invoke_tool(tool, {}, wait=wait_none())

    assert result.is_error
    assert result.content.startswith("Authentication error:")
    assert len(calls) == 1


async def test_builtin_tool_runs_once():
    func, calls = flaky(10, ValueError("boom"))
    tool = make_tool("local", func=func, origin=ToolOrigin.BUILTIN)

    result = await invoke_tool(tool, {}, wait=wait_none())

    assert result.content == "Error executing tool local: boom"
    assert len(calls) == 1


async def test_timeout_produces_readable_message():
    async def slow(payload):
        await asyncio.sleep(5)

    tool = make_tool("slow_tool", func=slow, retry=RetryPolicy(max_attempts=3, timeout=0.05))

    result = await invoke_tool(tool, {}, wait=wait_none())

    assert result.is_error
    assert result.content.startswith("The slow_tool operation timed out after 0.05 seconds.")


async def test_deadline_applies_with_default_backoff():
    attempts = []

    async def slow(payload):
        attempts.append(1)
        await asyncio.sleep(0.3)
        return "late result"

    tool = make_tool("list_zoom_meetings", func=slow, retry=RetryPolicy(max_attempts=3, timeout=0.1))

    started = time.monotonic()
    result = await invoke_tool(tool, {})
    elapsed = time.monotonic() - started

    assert result.is_error
    assert "timed out after 0.1 seconds" in result.content
    assert attempts == [1]
    assert elapsed < 0.3


async def test_invalid_arguments_never_reach_the_tool():
    func, calls = flaky(0, RuntimeError("unused"))
    schema = {
        "type": "object",
        "properties": {"channel": {"type": "string"}, "text": {"type": "string"}},
        "required": ["channel"],
    }
    tool = make_tool("send_slack_message", func=func, schema=schema)

    result = await invoke_tool(tool, {"text": "hi"}, wait=wait_none())

    assert result.is_error
    assert "Invalid arguments for send_slack_message" in result.content
    assert calls == []


async def test_valid_arguments_are_passed_by_property_name():
    func, calls = flaky(0, RuntimeError("unused"))
    schema = {
        "type": "object",
        "properties": {"schema": {"type": "string"}, "limit": {"type": "integer"}},
        "required": ["schema"],
    }
    tool = make_tool("find_documents", func=func, schema=schema)

    await invoke_tool(tool, {"schema": "users", "limit": 5, "junk": True})

    assert calls == [{"schema": "users", "limit": 5}]


async def test_prepare_hook_adds_request_context():
    func, calls = flaky(0, RuntimeError("unused"))
    tool = make_tool("list_zoom_meetings", func=func, prepare=lambda args, ctx: {**args, "user_id": ctx.user_id})

    await invoke_tool(tool, {}, context=SimpleNamespace(user_id="user-9"))

    assert calls == [{"user_id": "user-9"}]


class TestSerialization:
    def test_strings_pass_through(self):
        assert serialize_tool_output("plain") == "plain"

    def test_none_is_empty(self):
        assert serialize_tool_output(None) == ""

    def test_dict_with_content_uses_content(self):
        assert serialize_tool_output({"content": "the answer", "meta": 1}) == "the answer"

    def test_other_dicts_are_json(self):
        assert json.loads(serialize_tool_output({"count": 2})) == {"count": 2}

    def test_text_blocks_are_joined(self):
        blocks = [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}]
        assert serialize_tool_output(blocks) == "one\ntwo"

    def test_other_lists_are_json(self):
        assert json.loads(serialize_tool_output([1, 2])) == [1, 2]


class TestBuiltinTools:
    def test_core_tools_are_registered(self):
        names = {t.name for t in registry.get_all_tools()}
        assert {"web_search", "generate_image", "get_current_time"} <= names

    def test_injected_key_is_hidden_from_the_model(self):
        schema = registry.get("generate_image").schema
        assert "prompt" in schema["properties"]
        assert "api_key" not in schema["properties"]

    @respx.mock
    async def test_web_search_returns_title_link_snippet(self):
        settings = get_settings()
        respx.get(f"{settings.SEARXNG_API_URL.rstrip('/')}/search").mock(
            return_value=httpx.Response(200, json={
                "results": [{"title": "Python", "url": "https://python.org", "content": "Home page"}],
            })
        )

        result = await invoke_tool(registry.get("web_search"), {"query": "python"})

        assert json.loads(result.content) == [
            {"title": "Python", "link": "https://python.org", "snippet": "Home page"}
        ]

    @respx.mock
    async def test_generate_image_uses_request_key(self):
        route = respx.post(get_settings().OPENAI_IMAGE_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"url": "https://img/cat.png"}]})
        )

        result = await invoke_tool(
            registry.get("generate_image"), {"prompt": "a cat"}, context=SimpleNamespace(image_api_key="sk-img")
        )

        assert result.content == "https://img/cat.png"
        assert route.calls.last.request.headers["Authorization"] == "Bearer sk-img"

    async def test_generate_image_without_key_is_an_auth_error(self):
        result = await invoke_tool(
            registry.get("generate_image"), {"prompt": "a cat"}, context=SimpleNamespace(image_api_key=None)
        )

        assert result.is_error
        assert result.content.startswith("Authentication error:")


class TestNullableSchemas:
    async def test_type_array_with_null_accepts_values_and_none(self):
        func, calls = flaky(0, RuntimeError("unused"))
        schema = {
            "type": "object",
            "properties": {
                "channel": {"type": "string"},
                "thread_ts": {"type": ["string", "null"]},
            },
            "required": ["channel", "thread_ts"],
        }
        tool = make_tool("reply_to_thread", func=func, schema=schema)

        first = await invoke_tool(tool, {"channel": "general", "thread_ts": "1700.01"}, wait=wait_none())
        second = await invoke_tool(tool, {"channel": "general", "thread_ts": None}, wait=wait_none())

        assert not first.is_error and not second.is_error
        assert calls == [
            {"channel": "general", "thread_ts": "1700.01"},
            {"channel": "general", "thread_ts": None},
        ]

    async def test_any_of_is_a_union(self):
        func, calls = flaky(0, RuntimeError("unused"))
        schema = {
            "type": "object",
            "properties": {"limit": {"anyOf": [{"type": "integer"}, {"type": "null"}]}},
        }
        tool = make_tool("list_invoices", func=func, schema=schema)

        result = await invoke_tool(tool, {"limit": 10}, wait=wait_none())

        assert not result.is_error
        assert calls == [{"limit": 10}]

    async def test_wrong_type_in_nullable_field_is_rejected_once(self):
        func, calls = flaky(0, RuntimeError("unused"))
        schema = {"type": "object", "properties": {"count": {"type": ["integer", "null"]}}}
        tool = make_tool("count_documents", func=func, schema=schema)

        result = await invoke_tool(tool, {"count": "many"}, wait=wait_none())

        assert result.is_error
        assert "Invalid arguments for count_documents" in result.content
        assert calls == []
