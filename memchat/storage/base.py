"""Storage contract shared by all memory backends.

The core never inspects query text to decide what to do; each operation is an
explicit method on :class:`MemoryBackend`. Backends own the records and hand
out copies, so callers only ever see session-scoped query results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal, Protocol, runtime_checkable

Role = Literal["user", "assistant"]


@dataclass
class SessionRecord:
    """A chat session, created on its first message."""

    id: str
    created_at: int
    updated_at: int


@dataclass
class MessageRecord:
    """One stored turn.

    Immutable except for the one-way ``summarized`` False -> True transition.
    """

    id: int
    session_id: str
    role: Role
    content: str
    tokens: int
    timestamp: int
    summarized: bool = False
    embedding: list[float] | None = None


@dataclass
class MemoryRecord:
    """A long-term summary produced by one summarization pass."""

    session_id: str
    summary: str
    created_at: int
    embedding: list[float] | None = field(default=None, repr=False)


@runtime_checkable
class MemoryBackend(Protocol):
    """Typed repository for sessions, messages and summaries.

    Ordering rules every backend must honour:

    - ``recent_messages`` picks the newest unsummarized messages (timestamp
      descending, later insertion first on ties) and returns them oldest first.
    - ``unsummarized_messages`` and ``session_messages`` are ascending by
      timestamp, insertion order on ties.
    - ``list_summaries`` is ascending by ``created_at``.
    - ``mark_summarized`` applies the whole id set as one batch and is
      idempotent.
    """

    def create_session_if_absent(self, session_id: str, now: int) -> None: ...

    def touch_session(self, session_id: str, now: int) -> None: ...

    def get_session(self, session_id: str) -> SessionRecord | None: ...

    def append_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        tokens: int,
        timestamp: int,
        embedding: list[float] | None = None,
    ) -> int: ...

    def count_unsummarized(self, session_id: str, role: Role | None = None) -> int: ...

    def recent_messages(self, session_id: str, limit: int) -> list[MessageRecord]: ...

    def unsummarized_messages(self, session_id: str) -> list[MessageRecord]: ...

    def session_messages(self, session_id: str) -> list[MessageRecord]: ...

    def mark_summarized(self, ids: Iterable[int]) -> None: ...

    def append_summary(
        self,
        session_id: str,
        summary: str,
        created_at: int,
        embedding: list[float] | None = None,
    ) -> None: ...

    def list_summaries(self, session_id: str) -> list[MemoryRecord]: ...
