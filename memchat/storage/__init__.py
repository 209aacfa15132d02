"""Storage backends and the startup-time backend factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from memchat.storage.base import MemoryBackend, MemoryRecord, MessageRecord, SessionRecord
from memchat.storage.file import JsonFileBackend
from memchat.storage.memory import InMemoryBackend

if TYPE_CHECKING:
    from memchat.config.schema import StorageConfig

__all__ = [
    "InMemoryBackend",
    "JsonFileBackend",
    "MemoryBackend",
    "MemoryRecord",
    "MessageRecord",
    "SessionRecord",
    "create_backend",
]


def create_backend(config: StorageConfig) -> MemoryBackend:
    """Build the backend named by ``config.backend``.

    chromadb is an optional dependency, imported only when selected.
    """
    if config.backend == "memory":
        return InMemoryBackend()
    if config.backend == "file":
        return JsonFileBackend(config.data_path)
    if config.backend == "chroma":
        from memchat.storage.chroma import ChromaBackend

        return ChromaBackend(
            config.data_path,
            host=config.chroma_host,
            port=config.chroma_port,
            messages_collection=config.messages_collection,
            memories_collection=config.memories_collection,
        )
    raise ValueError(f"Unknown storage backend: {config.backend}")
