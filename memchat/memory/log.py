"""Message log (short-term tier) and long-term summary store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from memchat.logging import get_logger
from memchat.utils.helpers import estimate_tokens, now_ms

if TYPE_CHECKING:
    from memchat.embeddings.provider import EmbeddingProvider
    from memchat.storage.base import MemoryBackend, Role

logger = get_logger(__name__)

_ROLES = ("user", "assistant")


class MessageLog:
    """
    Append-only per-session record of turns.

    Each message carries a summarized flag; the unsummarized messages form
    the short-term tier that the context window and the summarizer read.
    """

    def __init__(self, backend: MemoryBackend, embeddings: EmbeddingProvider | None = None):
        self.backend = backend
        self.embeddings = embeddings

    async def append(
        self,
        session_id: str,
        role: Role,
        content: str,
        tokens: int | None = None,
        timestamp: int | None = None,
    ) -> int:
        """Store one turn and return its id.

        Creates the session on first use. The timestamp is clamped to the
        session's last update so per-session order never goes backwards.
        """
        if role not in _ROLES:
            raise ValueError(f"Unsupported role: {role!r}")
        now = timestamp if timestamp is not None else now_ms()
        self.backend.create_session_if_absent(session_id, now)
        session = self.backend.get_session(session_id)
        if session is not None and now < session.updated_at:
            now = session.updated_at

        embedding = await self.embeddings.embed(content) if self.embeddings else None
        msg_id = self.backend.append_message(
            session_id,
            role,
            content,
            estimate_tokens(content) if tokens is None else max(0, tokens),
            now,
            embedding,
        )
        self.backend.touch_session(session_id, now)
        logger.debug("message_appended", session_id=session_id, message_id=msg_id, role=role)
        return msg_id

    def count_unsummarized(self, session_id: str, role: Role | None = None) -> int:
        """Unsummarized messages of the session, optionally of one role only."""
        return self.backend.count_unsummarized(session_id, role)

    def recent(self, session_id: str, limit: int) -> list[dict[str, str]]:
        """Newest *limit* unsummarized turns, oldest first, as ``{role, content}``."""
        return [
            {"role": m.role, "content": m.content}
            for m in self.backend.recent_messages(session_id, limit)
        ]

    def unsummarized_batch(self, session_id: str) -> list[dict[str, Any]]:
        """Every unsummarized turn, ascending, as ``{id, role, content}``."""
        return [
            {"id": m.id, "role": m.role, "content": m.content}
            for m in self.backend.unsummarized_messages(session_id)
        ]

    def mark_summarized(self, ids: Iterable[int]) -> None:
        self.backend.mark_summarized(set(ids))


class LongTermMemoryStore:
    """Append-only per-session record of summaries, read oldest first."""

    def __init__(self, backend: MemoryBackend, embeddings: EmbeddingProvider | None = None):
        self.backend = backend
        self.embeddings = embeddings

    async def append(self, session_id: str, summary: str, created_at: int | None = None) -> None:
        embedding = await self.embeddings.embed(summary) if self.embeddings else None
        self.backend.append_summary(
            session_id,
            summary,
            created_at if created_at is not None else now_ms(),
            embedding,
        )

    def list(self, session_id: str) -> list[dict[str, Any]]:
        return [
            {"summary": m.summary, "created_at": m.created_at}
            for m in self.backend.list_summaries(session_id)
        ]
