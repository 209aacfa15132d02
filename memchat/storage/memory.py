"""In-memory backend: fast, dependency-free, lost on restart."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from memchat.storage.base import MemoryRecord, MessageRecord, Role, SessionRecord


class InMemoryBackend:
    """Keeps sessions, messages and summaries in process memory.

    Messages live in one list in insertion order, so Python's stable sort
    gives the insertion-order tie-break for free.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._messages: list[MessageRecord] = []
        self._by_id: dict[int, MessageRecord] = {}
        self._memories: list[MemoryRecord] = []
        self._next_id = 1

    # -- sessions -----------------------------------------------------------

    def create_session_if_absent(self, session_id: str, now: int) -> None:
        if session_id not in self._sessions:
            self._sessions[session_id] = SessionRecord(id=session_id, created_at=now, updated_at=now)

    def touch_session(self, session_id: str, now: int) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.updated_at = max(session.updated_at, now)

    def get_session(self, session_id: str) -> SessionRecord | None:
        session = self._sessions.get(session_id)
        return replace(session) if session else None

    # -- messages -----------------------------------------------------------

    def append_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        tokens: int,
        timestamp: int,
        embedding: list[float] | None = None,
    ) -> int:
        msg = MessageRecord(
            id=self._next_id,
            session_id=session_id,
            role=role,
            content=content,
            tokens=tokens,
            timestamp=timestamp,
            embedding=list(embedding) if embedding is not None else None,
        )
        self._next_id += 1
        self._messages.append(msg)
        self._by_id[msg.id] = msg
        return msg.id

    def _for_session(self, session_id: str, *, unsummarized_only: bool = False) -> list[MessageRecord]:
        return [
            m for m in self._messages
            if m.session_id == session_id and not (unsummarized_only and m.summarized)
        ]

    def count_unsummarized(self, session_id: str, role: Role | None = None) -> int:
        return sum(
            1 for m in self._for_session(session_id, unsummarized_only=True)
            if role is None or m.role == role
        )

    def recent_messages(self, session_id: str, limit: int) -> list[MessageRecord]:
        if limit <= 0:
            return []
        ordered = sorted(self._for_session(session_id, unsummarized_only=True), key=lambda m: m.timestamp)
        return [replace(m) for m in ordered[-limit:]]

    def unsummarized_messages(self, session_id: str) -> list[MessageRecord]:
        ordered = sorted(self._for_session(session_id, unsummarized_only=True), key=lambda m: m.timestamp)
        return [replace(m) for m in ordered]

    def session_messages(self, session_id: str) -> list[MessageRecord]:
        ordered = sorted(self._for_session(session_id), key=lambda m: m.timestamp)
        return [replace(m) for m in ordered]

    def mark_summarized(self, ids: Iterable[int]) -> None:
        # Resolve every id before flipping any flag so the batch lands as a unit.
        targets = [self._by_id[i] for i in set(ids) if i in self._by_id]
        for msg in targets:
            msg.summarized = True

    # -- long-term memory ---------------------------------------------------

    def append_summary(
        self,
        session_id: str,
        summary: str,
        created_at: int,
        embedding: list[float] | None = None,
    ) -> None:
        self._memories.append(MemoryRecord(
            session_id=session_id,
            summary=summary,
            created_at=created_at,
            embedding=list(embedding) if embedding is not None else None,
        ))

    def list_summaries(self, session_id: str) -> list[MemoryRecord]:
        ordered = sorted(
            (m for m in self._memories if m.session_id == session_id),
            key=lambda m: m.created_at,
        )
        return [replace(m) for m in ordered]
