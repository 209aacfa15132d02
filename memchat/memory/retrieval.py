"""Similarity ranking over a session's stored messages."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Sequence

from memchat.logging import get_logger

if TYPE_CHECKING:
    from memchat.embeddings.provider import EmbeddingProvider
    from memchat.storage.base import MemoryBackend

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product over the product of Euclidean norms.

    Both vectors must have the same length. A zero vector scores 0.0.
    """
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


class SemanticRetriever:
    """Ranks every stored message of a session, summarized or not, against a query."""

    def __init__(self, backend: MemoryBackend, embeddings: EmbeddingProvider | None = None):
        self.backend = backend
        self.embeddings = embeddings

    def rank(self, session_id: str, query_embedding: Sequence[float], limit: int) -> list[dict[str, Any]]:
        """Return ``{content, role, score}`` by descending score, storage order on ties."""
        results: list[dict[str, Any]] = []
        skipped = 0
        for msg in self.backend.session_messages(session_id):
            # Vectors from a different embedder cannot be compared.
            if msg.embedding is None or len(msg.embedding) != len(query_embedding):
                skipped += 1
                continue
            results.append({
                "content": msg.content,
                "role": msg.role,
                "score": cosine_similarity(query_embedding, msg.embedding),
            })
        if skipped:
            logger.debug("retrieval_skipped_candidates", session_id=session_id, skipped=skipped)
        results.sort(key=lambda r: r["score"], reverse=True)
        return results[:max(0, limit)]

    async def search(self, session_id: str, query: str, limit: int = 5) -> list[dict[str, Any]]:
        """Embed *query* and rank the session's messages against it."""
        if self.embeddings is None:
            raise RuntimeError("SemanticRetriever.search needs an EmbeddingProvider")
        query_embedding = await self.embeddings.embed(query)
        return self.rank(session_id, query_embedding, limit)
