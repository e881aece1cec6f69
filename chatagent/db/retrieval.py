"""
Document retrieval for uploaded files.

Embeds the query locally with sentence-transformers and searches the
document index through Supabase. `build_rag_context` turns ranked results
into a bounded context block.
"""
from dataclasses import dataclass
from typing import Protocol

from sentence_transformers import SentenceTransformer

from chatagent.agent.prompts import DOCUMENT_HEADER, NO_DOCUMENTS_FOUND
from chatagent.config import get_settings

# Module-level model cache (more robust than lru_cache for ML models)
_embedding_model = None


@dataclass
class RetrievalResult:
    text: str
    source: str
    score: float


class DocumentRetriever(Protocol):
    def search(self, index_id: str, query: str, limit: int) -> list[RetrievalResult]: ...


def get_embedding_model() -> SentenceTransformer:
    """Get cached embedding model instance."""
    global _embedding_model
    if _embedding_model is None:
        settings = get_settings()
        _embedding_model = SentenceTransformer(settings.EMBEDDING_MODEL)
    return _embedding_model


def generate_embedding(text: str) -> list[float]:
    """Generate embedding vector for text."""
    global _embedding_model
    try:
        embedding = get_embedding_model().encode(text, convert_to_numpy=True)
        return embedding.tolist()
    except RuntimeError as e:
        # Meta tensor or corrupted model state: recreate the model once
        if "meta tensor" in str(e) or "no data" in str(e):
            print(f"  [WARN] Embedding model corrupted, recreating: {e}")
            _embedding_model = None
            return get_embedding_model().encode(text, convert_to_numpy=True).tolist()
        raise


class SupabaseRetriever:
    """DocumentRetriever backed by the `match_documents` RPC."""

    def __init__(self, db=None, embed=generate_embedding, threshold: float | None = None):
        if db is None:
            from chatagent.db.supabase_client import get_supabase_client
            db = get_supabase_client()
        self.db = db
        self.embed = embed
        self.threshold = get_settings().RAG_SCORE_THRESHOLD if threshold is None else threshold

    def search(self, index_id: str, query: str, limit: int) -> list[RetrievalResult]:
        rows = self.db.match_documents(index_id, self.embed(query), self.threshold, limit)
        return [
            RetrievalResult(
                text=row.get("content") or "",
                source=row.get("file_name") or row.get("source") or index_id,
                score=float(row.get("similarity") or 0.0),
            )
            for row in rows
        ]


def build_rag_context(results: list[RetrievalResult], max_chars: int | None = None) -> str:
    """
    Format ranked results into a context block of at most `max_chars`.

    Higher scores are placed first; once the budget runs out the next result
    is truncated and everything ranked below it is dropped.
    """
    if max_chars is None:
        max_chars = get_settings().RAG_MAX_CONTEXT_CHARS
    if not results:
        return NO_DOCUMENTS_FOUND

    ranked = sorted(results, key=lambda r: r.score, reverse=True)
    context = ""
    for index, result in enumerate(ranked, start=1):
        block = DOCUMENT_HEADER.format(index=index, source=result.source) + result.text.strip() + "\n\n"
        remaining = max_chars - len(context)
        if remaining <= 0:
            break
        if len(block) > remaining:
            if remaining > 3:
                context += block[: remaining - 3] + "..."
            break
        context += block
    return context.strip()
