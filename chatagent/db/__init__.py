"""Database client and utilities."""
from chatagent.db.supabase_client import get_supabase_client, SupabaseClient, TurnRecord, TurnStore, AgentStore
from chatagent.db.retrieval import DocumentRetriever, RetrievalResult, SupabaseRetriever, build_rag_context

__all__ = [
    "get_supabase_client",
    "SupabaseClient",
    "TurnRecord",
    "TurnStore",
    "AgentStore",
    "DocumentRetriever",
    "RetrievalResult",
    "SupabaseRetriever",
    "build_rag_context",
]
