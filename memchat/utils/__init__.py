"""Utility functions for memchat."""

from memchat.utils.helpers import atomic_write_text, ensure_dir, estimate_tokens, now_ms

__all__ = ["atomic_write_text", "ensure_dir", "estimate_tokens", "now_ms"]
