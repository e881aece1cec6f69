"""
Supabase client wrapper for conversation turns and agent configuration.
"""
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, Field
from supabase import Client, create_client

from chatagent.agent.state import AgentSpec, DocumentRef, ResponseModelConfig
from chatagent.config import get_settings


class TurnRecord(BaseModel):
    """One persisted question/answer exchange."""
    conversation_id: str
    user_id: str | None = None
    query: str
    answer: str = ""
    credit_used: float = 0.0
    provider: str | None = None
    model: str | None = None
    agent_id: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)
    citations: list[dict] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    stopped: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TurnStore(Protocol):
    def save_turn(self, record: TurnRecord) -> None: ...

    def load_history(self, conversation_id: str, limit: int = 5) -> list[BaseMessage]: ...


class AgentStore(Protocol):
    def get_agent(self, agent_id: str) -> AgentSpec | None: ...


def agent_from_row(row: dict) -> AgentSpec:
    """Map an `agents` table row to an AgentSpec."""
    response_model = row.get("response_model")
    return AgentSpec(
        id=str(row.get("id")) if row.get("id") is not None else None,
        title=row.get("title") or "",
        description=row.get("description"),
        system_prompt=row.get("system_prompt") or "",
        documents=[DocumentRef(**doc) for doc in row.get("documents") or [] if doc.get("index_id")],
        tool_names=list(row.get("tool_names") or []),
        type=row.get("type") or "single",
        sub_agent_ids=[str(i) for i in row.get("sub_agent_ids") or []],
        response_model=ResponseModelConfig(**response_model) if response_model and response_model.get("name") else None,
        custom_instruction=row.get("custom_instruction"),
    )


def history_from_rows(rows: list[dict]) -> list[BaseMessage]:
    """Rebuild chat history from turn rows, oldest first."""
    messages: list[BaseMessage] = []
    for row in rows:
        if row.get("query"):
            messages.append(HumanMessage(content=row["query"]))
        if row.get("answer"):
            messages.append(AIMessage(content=row["answer"]))
    return messages


class SupabaseClient:
    """Wrapper around Supabase client with typed methods."""

    def __init__(self, client: Client):
        self.client = client

    # =========================================================================
    # Conversation turns
    # =========================================================================

    def save_turn(self, record: TurnRecord) -> None:
        """Insert one turn. Raises on failure; the caller logs it."""
        self.client.table("conversation_turns").insert(record.model_dump(mode="json")).execute()

    def load_history(self, conversation_id: str, limit: int = 5) -> list[BaseMessage]:
        """Last `limit` turns of a conversation as chat messages."""
        result = (
            self.client.table("conversation_turns")
            .select("query, answer, created_at")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        rows = list(reversed(result.data or []))
        return history_from_rows(rows)

    # =========================================================================
    # Agents
    # =========================================================================

    def get_agent(self, agent_id: str) -> AgentSpec | None:
        """Load an agent's configuration, None if it does not exist."""
        result = (
            self.client.table("agents")
            .select("*")
            .eq("id", agent_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return agent_from_row(result.data[0])

    # =========================================================================
    # Documents
    # =========================================================================

    def match_documents(
        self,
        index_id: str,
        query_embedding: list[float],
        match_threshold: float = 0.15,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Semantic search over one uploaded document index."""
        try:
            result = self.client.rpc(
                "match_documents",
                {
                    "query_embedding": query_embedding,
                    "match_threshold": match_threshold,
                    "match_count": limit,
                    "filter_index_id": index_id,
                }
            ).execute()
            return result.data or []
        except Exception as e:
            print(f"  [WARN] match_documents failed (table/RPC may not exist): {e}")
            return []


@lru_cache()
def get_supabase_client() -> SupabaseClient:
    """Get cached Supabase client instance."""
    settings = get_settings()
    client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
    return SupabaseClient(client)
