"""Exception types raised across the memchat core."""


class MemchatError(Exception):
    """Base class for memchat errors."""


class CompletionError(MemchatError):
    """The chat-completion collaborator failed (transport, non-2xx or malformed reply)."""


class StorageError(MemchatError):
    """A storage backend could not complete an operation."""
