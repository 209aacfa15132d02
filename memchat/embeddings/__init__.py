"""Text embedding with a deterministic local fallback."""

from memchat.embeddings.provider import EmbeddingProvider, fallback_embedding

__all__ = ["EmbeddingProvider", "fallback_embedding"]
