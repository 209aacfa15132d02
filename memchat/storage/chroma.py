"""ChromaDB backend: messages and summaries as documents in two collections.

Message metadata carries ``session_id``, ``role``, ``tokens``, ``timestamp``,
a ``summarized`` flag and ``seq``, the integer message id that also breaks
timestamp ties. Sessions are rebuilt from message metadata on startup.

Chroma needs a fixed-width vector per document, so each document is indexed
by the deterministic character-histogram embedding of its text. The record's
own embedding, when it has one, travels in metadata as JSON, which keeps
provider and fallback vectors of different lengths in one collection.
"""

from __future__ import annotations

import json
import uuid
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Iterator

import chromadb

from memchat.embeddings.provider import fallback_embedding
from memchat.errors import StorageError
from memchat.logging import get_logger
from memchat.storage.base import MemoryRecord, MessageRecord, Role, SessionRecord

logger = get_logger(__name__)


@contextmanager
def _chroma_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except Exception as e:
        logger.error("chroma_call_failed", operation=operation, error=str(e), error_type=type(e).__name__)
        raise StorageError(f"Chroma {operation} failed: {e}") from e


def _dump_embedding(embedding: list[float] | None) -> str:
    return json.dumps(list(embedding)) if embedding is not None else ""


def _load_embedding(raw: Any) -> list[float] | None:
    return json.loads(raw) if raw else None


def _where(*clauses: dict[str, Any]) -> dict[str, Any]:
    return clauses[0] if len(clauses) == 1 else {"$and": list(clauses)}


class ChromaBackend:
    """Backend over a Chroma client (local persistent or remote HTTP)."""

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        host: str | None = None,
        port: int = 8000,
        client: Any | None = None,
        messages_collection: str = "chat_messages",
        memories_collection: str = "long_term_memories",
    ):
        if client is not None:
            self._client = client
        elif host:
            self._client = chromadb.HttpClient(host=host, port=port)
        else:
            self._client = chromadb.PersistentClient(path=str(path or "vector_data"))

        with _chroma_errors("open"):
            self._messages = self._client.get_or_create_collection(
                name=messages_collection,
                metadata={"hnsw:space": "cosine"},
            )
            self._memories = self._client.get_or_create_collection(
                name=memories_collection,
                metadata={"hnsw:space": "cosine"},
            )

        self._sessions: dict[str, SessionRecord] = {}
        self._next_id = 1
        self._next_memory_seq = 0
        self._load()

    def _load(self) -> None:
        with _chroma_errors("load"):
            rows = self._messages.get(include=["metadatas"])
            memory_count = self._memories.count()

        for meta in rows.get("metadatas") or []:
            ts = int(meta["timestamp"])
            session = self._sessions.get(meta["session_id"])
            if session is None:
                self._sessions[meta["session_id"]] = SessionRecord(meta["session_id"], ts, ts)
            else:
                session.created_at = min(session.created_at, ts)
                session.updated_at = max(session.updated_at, ts)
            self._next_id = max(self._next_id, int(meta["seq"]) + 1)
        self._next_memory_seq = memory_count

        logger.info(
            "storage_loaded",
            backend="chroma",
            sessions=len(self._sessions),
            messages=len(rows.get("ids") or []),
            memories=memory_count,
        )

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
        msg_id = self._next_id
        with _chroma_errors("add message"):
            self._messages.add(
                ids=[str(msg_id)],
                documents=[content],
                embeddings=[fallback_embedding(content)],
                metadatas=[{
                    "session_id": session_id,
                    "role": role,
                    "tokens": tokens,
                    "timestamp": timestamp,
                    "summarized": False,
                    "seq": msg_id,
                    "embedding": _dump_embedding(embedding),
                }],
            )
        self._next_id = msg_id + 1
        return msg_id

    def _query_messages(self, *clauses: dict[str, Any]) -> list[MessageRecord]:
        with _chroma_errors("get messages"):
            rows = self._messages.get(where=_where(*clauses), include=["documents", "metadatas"])
        records = [
            MessageRecord(
                id=int(meta["seq"]),
                session_id=meta["session_id"],
                role=meta["role"],
                content=doc,
                tokens=int(meta["tokens"]),
                timestamp=int(meta["timestamp"]),
                summarized=bool(meta["summarized"]),
                embedding=_load_embedding(meta.get("embedding")),
            )
            for doc, meta in zip(rows["documents"], rows["metadatas"])
        ]
        records.sort(key=lambda m: (m.timestamp, m.id))
        return records

    def count_unsummarized(self, session_id: str, role: Role | None = None) -> int:
        clauses = [{"session_id": session_id}, {"summarized": False}]
        if role is not None:
            clauses.append({"role": role})
        with _chroma_errors("count messages"):
            rows = self._messages.get(where=_where(*clauses), include=[])
        return len(rows["ids"])

    def recent_messages(self, session_id: str, limit: int) -> list[MessageRecord]:
        if limit <= 0:
            return []
        return self.unsummarized_messages(session_id)[-limit:]

    def unsummarized_messages(self, session_id: str) -> list[MessageRecord]:
        return self._query_messages({"session_id": session_id}, {"summarized": False})

    def session_messages(self, session_id: str) -> list[MessageRecord]:
        return self._query_messages({"session_id": session_id})

    def mark_summarized(self, ids: Iterable[int]) -> None:
        wanted = sorted({str(i) for i in ids})
        if not wanted:
            return
        with _chroma_errors("mark summarized"):
            found = self._messages.get(ids=wanted, where={"summarized": False}, include=[])["ids"]
            if not found:
                return
            # One update call for the whole batch.
            self._messages.update(ids=found, metadatas=[{"summarized": True} for _ in found])
        logger.debug("messages_marked_summarized", count=len(found))

    # -- summaries ----------------------------------------------------------

    def append_summary(
        self,
        session_id: str,
        summary: str,
        created_at: int,
        embedding: list[float] | None = None,
    ) -> None:
        seq = self._next_memory_seq
        with _chroma_errors("add summary"):
            self._memories.add(
                ids=[str(uuid.uuid4())],
                documents=[summary],
                embeddings=[fallback_embedding(summary)],
                metadatas=[{
                    "session_id": session_id,
                    "created_at": created_at,
                    "seq": seq,
                    "embedding": _dump_embedding(embedding),
                }],
            )
        self._next_memory_seq = seq + 1

    def list_summaries(self, session_id: str) -> list[MemoryRecord]:
        with _chroma_errors("get summaries"):
            rows = self._memories.get(where={"session_id": session_id}, include=["documents", "metadatas"])
        ordered = sorted(
            zip(rows["documents"], rows["metadatas"]),
            key=lambda row: (int(row[1]["created_at"]), int(row[1]["seq"])),
        )
        return [
            MemoryRecord(
                session_id=meta["session_id"],
                summary=doc,
                created_at=int(meta["created_at"]),
                embedding=_load_embedding(meta.get("embedding")),
            )
            for doc, meta in ordered
        ]
