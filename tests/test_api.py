import httpx
import pytest

from chatagent.agent.session import CancellationRegistry, ChatDependencies
from chatagent.main import create_app
from tests.fakes import InMemoryTurnStore


@pytest.fixture
def deps():
    return ChatDependencies(turn_store=InMemoryTurnStore(), cancellations=CancellationRegistry())


@pytest.fixture
async def client(deps):
    app = create_app(deps)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] in ("healthy", "degraded")


async def test_stop_without_running_turn_is_404(client):
    response = await client.post("/chat/conv-1/stop")

    assert response.status_code == 404


async def test_stop_trips_the_flag(client, deps):
    event = deps.cancellations.register("conv-1")

    response = await client.post("/chat/conv-1/stop")

    assert response.status_code == 200
    assert response.json() == {"status": "stopping", "conversation_id": "conv-1"}
    assert event.is_set()


async def test_unknown_provider_is_rejected(client):
    response = await client.post(
        "/chat/stream",
        json={"query": "hi", "conversation_id": "conv-1", "provider": "mistral"},
    )

    assert response.status_code == 400
    assert "Unknown provider" in response.json()["detail"]


async def test_empty_query_is_rejected(client):
    response = await client.post("/chat/stream", json={"query": "", "conversation_id": "conv-1"})

    assert response.status_code == 422
