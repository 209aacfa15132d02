"""JSON-file backend: the in-memory backend persisted to a data directory.

Layout under ``data_dir``::

    sessions.json   [{"id", "created_at", "updated_at"}, ...]
    messages.json   [{"id", "session_id", "role", ..., "embedding"}, ...]
    memories.json   [{"session_id", "summary", "created_at", "embedding"}, ...]

Each mutation rewrites the affected file through a temp file and
``os.replace``, so a ``mark_summarized`` batch reaches disk all at once or
not at all.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable

from memchat.errors import StorageError
from memchat.logging import get_logger
from memchat.storage.base import MemoryRecord, MessageRecord, Role, SessionRecord
from memchat.storage.memory import InMemoryBackend
from memchat.utils.helpers import atomic_write_text, ensure_dir

logger = get_logger(__name__)


class JsonFileBackend(InMemoryBackend):
    """File-persisted backend that loads everything at startup."""

    SESSIONS_FILE = "sessions.json"
    MESSAGES_FILE = "messages.json"
    MEMORIES_FILE = "memories.json"

    def __init__(self, data_dir: Path):
        super().__init__()
        self.data_dir = ensure_dir(Path(data_dir))
        self._load()

    # -- persistence --------------------------------------------------------

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _read_json(self, name: str) -> list[dict[str, Any]]:
        path = self._path(name)
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Unexpected content in {path}: expected a JSON array")
        return data

    def _write_json(self, name: str, rows: list[dict[str, Any]]) -> None:
        path = self._path(name)
        started = time.perf_counter()
        try:
            atomic_write_text(path, json.dumps(rows, ensure_ascii=False, indent=2))
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug(
            "storage_file_written",
            file=name,
            rows=len(rows),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    def _load(self) -> None:
        for row in self._read_json(self.SESSIONS_FILE):
            session = SessionRecord(**row)
            self._sessions[session.id] = session
        for row in self._read_json(self.MESSAGES_FILE):
            msg = MessageRecord(**row)
            self._messages.append(msg)
            self._by_id[msg.id] = msg
        for row in self._read_json(self.MEMORIES_FILE):
            self._memories.append(MemoryRecord(**row))
        if self._messages:
            self._next_id = max(m.id for m in self._messages) + 1
        logger.info(
            "storage_loaded",
            data_dir=str(self.data_dir),
            sessions=len(self._sessions),
            messages=len(self._messages),
            memories=len(self._memories),
        )

    def _save_sessions(self) -> None:
        self._write_json(self.SESSIONS_FILE, [asdict(s) for s in self._sessions.values()])

    def _save_messages(self) -> None:
        self._write_json(self.MESSAGES_FILE, [asdict(m) for m in self._messages])

    def _save_memories(self) -> None:
        self._write_json(self.MEMORIES_FILE, [asdict(m) for m in self._memories])

    # -- mutations ----------------------------------------------------------

    def create_session_if_absent(self, session_id: str, now: int) -> None:
        if session_id in self._sessions:
            return
        super().create_session_if_absent(session_id, now)
        try:
            self._save_sessions()
        except StorageError:
            del self._sessions[session_id]
            raise

    def touch_session(self, session_id: str, now: int) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        previous = session.updated_at
        super().touch_session(session_id, now)
        try:
            self._save_sessions()
        except StorageError:
            session.updated_at = previous
            raise

    def append_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        tokens: int,
        timestamp: int,
        embedding: list[float] | None = None,
    ) -> int:
        msg_id = super().append_message(session_id, role, content, tokens, timestamp, embedding)
        try:
            self._save_messages()
        except StorageError:
            self._messages.pop()
            del self._by_id[msg_id]
            self._next_id = msg_id
            raise
        return msg_id

    def mark_summarized(self, ids: Iterable[int]) -> None:
        pending = [i for i in set(ids) if i in self._by_id and not self._by_id[i].summarized]
        if not pending:
            return
        super().mark_summarized(pending)
        try:
            self._save_messages()
        except StorageError:
            # Keep memory consistent with disk when the batch did not land.
            for i in pending:
                self._by_id[i].summarized = False
            raise

    def append_summary(
        self,
        session_id: str,
        summary: str,
        created_at: int,
        embedding: list[float] | None = None,
    ) -> None:
        super().append_summary(session_id, summary, created_at, embedding)
        try:
            self._save_memories()
        except StorageError:
            # A summary that never reached disk must not shadow its batch.
            self._memories.pop()
            raise
