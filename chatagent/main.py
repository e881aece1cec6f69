"""
HTTP surface of the chat agent.

Routes:
- POST /chat/stream               run one turn, streamed as server-sent events
- POST /chat/{conversation_id}/stop   ask the running turn to stop
- GET  /health                    configuration status
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sse_starlette.sse import EventSourceResponse

from chatagent.agent.providers import map_provider_code
from chatagent.agent.session import ChatDependencies, stream_chat
from chatagent.agent.state import ChatRequest
from chatagent.config import get_settings
from chatagent.errors import ConfigurationError


def default_dependencies() -> ChatDependencies:
    """Supabase-backed stores and retriever."""
    from chatagent.db import SupabaseRetriever, get_supabase_client

    db = get_supabase_client()
    return ChatDependencies(turn_store=db, agent_store=db, retriever=SupabaseRetriever(db))


def create_app(deps: ChatDependencies | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        deps: Collaborators for chat sessions. Built from Supabase at startup
            when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        missing = get_settings().validate()
        if missing:
            print(f"[STARTUP] Missing settings {missing}, turns will not be saved")
        if app.state.deps is None:
            app.state.deps = default_dependencies()
        print("[STARTUP] Chat agent ready")
        yield

    settings = get_settings()
    app = FastAPI(
        title="Chat Agent",
        description="Streaming tool-using chat agent with supervisor delegation",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.deps = deps
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        missing = get_settings().validate()
        return {"status": "degraded" if missing else "healthy", "missing_config": missing}

    @app.post("/chat/stream")
    async def chat_stream(request: ChatRequest):
        """
        Stream one chat turn.

        Event kinds: token {token}, notice {type, ...}, done {message, usage,
        citations, images}, error {message}.
        """
        try:
            map_provider_code(request.provider)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return EventSourceResponse(stream_chat(request, app.state.deps))

    @app.post("/chat/{conversation_id}/stop")
    async def stop_chat(conversation_id: str):
        if not app.state.deps.cancellations.request_stop(conversation_id):
            raise HTTPException(status_code=404, detail="No active turn for this conversation")
        return {"status": "stopping", "conversation_id": conversation_id}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("chatagent.main:app", host=settings.API_HOST, port=settings.API_PORT)
