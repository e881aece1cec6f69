import asyncio

from chatagent.agent.providers import Provider, get_chat_model
from chatagent.cache import KeyedCache, TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_ttl_cache_reuses_value_until_expiry():
    clock = FakeClock()
    cache = TTLCache(ttl=300, clock=clock)
    calls = []

    async def factory():
        calls.append(clock.now)
        return ["tool"]

    assert await cache.get_or_create("k", factory) == ["tool"]
    clock.now += 299
    assert await cache.get_or_create("k", factory) == ["tool"]
    assert len(calls) == 1

    clock.now += 2
    await cache.get_or_create("k", factory)
    assert len(calls) == 2


async def test_ttl_cache_remembers_empty_results():
    cache = TTLCache(ttl=60, clock=FakeClock())
    calls = []

    async def factory():
        calls.append(1)
        return []

    await cache.get_or_create("k", factory)
    await cache.get_or_create("k", factory)

    assert calls == [1]


async def test_concurrent_misses_run_factory_once():
    cache = TTLCache(ttl=60)
    calls = []

    async def factory():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "value"

    results = await asyncio.gather(*(cache.get_or_create("k", factory) for _ in range(5)))

    assert results == ["value"] * 5
    assert calls == [1]


async def test_failures_are_not_cached():
    cache = TTLCache(ttl=60)
    attempts = []

    async def factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("down")
        return "ok"

    try:
        await cache.get_or_create("k", factory)
    except ConnectionError:
        pass

    assert await cache.get_or_create("k", factory) == "ok"


def test_invalidate():
    cache = TTLCache(ttl=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.invalidate()
    assert cache.get("b") is None


def test_keyed_cache_builds_once():
    cache = KeyedCache()
    built = []

    first = cache.get_or_create(("a",), lambda: built.append(1) or object())
    second = cache.get_or_create(("a",), lambda: built.append(1) or object())

    assert first is second
    assert built == [1]
    assert ("a",) in cache
    assert len(cache) == 1


class TestChatModelCache:
    def builder(self):
        built = []

        def build(provider, model_name, api_key, temperature=None):
            model = object()
            built.append((provider, model_name, api_key))
            return model

        return build, built

    def test_tool_free_models_are_reused(self):
        build, built = self.builder()
        cache = KeyedCache()

        a = get_chat_model(Provider.OPEN_AI, "gpt-4.1", "sk-1", needs_tools=False, cache=cache, builder=build)
        b = get_chat_model(Provider.OPEN_AI, "gpt-4.1", "sk-1", needs_tools=False, cache=cache, builder=build)

        assert a is b
        assert len(built) == 1

    def test_different_keys_get_different_clients(self):
        build, built = self.builder()
        cache = KeyedCache()

        a = get_chat_model(Provider.OPEN_AI, "gpt-4.1", "sk-1", needs_tools=False, cache=cache, builder=build)
        b = get_chat_model(Provider.OPEN_AI, "gpt-4.1", "sk-2", needs_tools=False, cache=cache, builder=build)

        assert a is not b

    def test_models_needing_tools_are_always_fresh(self):
        build, built = self.builder()
        cache = KeyedCache()

        get_chat_model(Provider.ANTHROPIC, "claude-sonnet-4", "sk-1", needs_tools=True, cache=cache, builder=build)
        get_chat_model(Provider.ANTHROPIC, "claude-sonnet-4", "sk-1", needs_tools=True, cache=cache, builder=build)

        assert len(built) == 2
        assert len(cache) == 0
