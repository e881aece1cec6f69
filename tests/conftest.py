import pytest

from chatagent.agent.session import CancellationRegistry, ChatDependencies
from chatagent.agent.state import ChatRequest
from chatagent.config import Settings
from tests.fakes import FakeChatModel, InMemoryAgentStore, InMemoryTurnStore


def make_settings(**overrides) -> Settings:
    settings = Settings()
    settings.OPENAI_API_KEY = ""
    settings.ANTHROPIC_API_KEY = ""
    settings.GOOGLE_API_KEY = ""
    settings.OPENROUTER_API_KEY = ""
    settings.MAX_AGENT_ITERATIONS = 10
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def make_request(**overrides) -> ChatRequest:
    data = {
        "query": "Hello",
        "conversation_id": "conv-1",
        "provider": "OPEN_AI",
        "model": "gpt-4.1",
        "api_key": "sk-test",
        "user_id": "user-1",
    }
    data.update(overrides)
    return ChatRequest(**data)


async def _fake_image(url: str) -> tuple[str, str]:
    if "broken" in url:
        raise ValueError("404 Not Found")
    return "aGVsbG8=", "image/png"


@pytest.fixture
def deps_factory():
    def _factory(
        model: FakeChatModel | None = None,
        *,
        store: InMemoryTurnStore | None = None,
        agents: dict | None = None,
        retriever=None,
        tools: list | None = None,
        **settings_overrides,
    ) -> ChatDependencies:
        model = model or FakeChatModel(script=["Hello there"])

        async def discover():
            return list(tools or [])

        return ChatDependencies(
            turn_store=store or InMemoryTurnStore(),
            agent_store=InMemoryAgentStore(agents),
            retriever=retriever,
            discover_tools=discover,
            model_factory=lambda *args, **kwargs: model,
            fetch_image=_fake_image,
            cancellations=CancellationRegistry(),
            settings=make_settings(**settings_overrides),
        )

    return _factory
