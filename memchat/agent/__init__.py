"""Turn orchestration: per-session locking and the chat service."""

from memchat.agent.chat import ChatService, TurnResult
from memchat.agent.session_locks import SessionLocks

__all__ = ["ChatService", "SessionLocks", "TurnResult"]
