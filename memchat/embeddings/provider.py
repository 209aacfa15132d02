"""Embedding provider: remote embeddings endpoint with a local fallback."""

from __future__ import annotations

import math
from typing import Any

import httpx

from memchat.logging import get_logger, mask_secret

logger = get_logger(__name__)

FALLBACK_DIMENSIONS = 128


def fallback_embedding(text: str, dimensions: int = FALLBACK_DIMENSIONS) -> list[float]:
    """Character histogram embedding, L2-normalized.

    Every character's code point modulo *dimensions* bumps one bucket. The
    result depends only on *text*, so identical input always gives an
    identical vector. Empty text yields the zero vector.
    """
    vector = [0.0] * dimensions
    for ch in text:
        vector[ord(ch) % dimensions] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


class EmbeddingProvider:
    """
    Turns text into a vector.

    The primary strategy POSTs ``{"model", "input"}`` to an OpenAI-compatible
    ``/embeddings`` endpoint. A missing endpoint, a transport error, a non-2xx
    status or a malformed payload all fall back to :func:`fallback_embedding`;
    failures are never surfaced to the caller.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str = "",
        model: str = "text-embedding-ada-002",
        timeout: float = 30.0,
        fallback_dimensions: int = FALLBACK_DIMENSIONS,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.fallback_dimensions = fallback_dimensions
        self.remote_calls = 0
        self.fallback_calls = 0

    @property
    def remote_enabled(self) -> bool:
        return bool(self.endpoint)

    async def embed(self, text: str) -> list[float]:
        if self.remote_enabled:
            vector = await self._embed_remote(text)
            if vector is not None:
                self.remote_calls += 1
                return vector
        self.fallback_calls += 1
        return fallback_embedding(text, self.fallback_dimensions)

    async def _embed_remote(self, text: str) -> list[float] | None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(
                    self.endpoint,
                    json={"model": self.model, "input": text},
                    headers=headers,
                )
            if r.status_code < 200 or r.status_code >= 300:
                logger.warning(
                    "embedding_http_error_fallback",
                    status_code=r.status_code,
                    endpoint=self.endpoint,
                )
                return None
            return self._parse_vector(r.json())
        except Exception as e:
            error = str(e)
            if self.api_key and self.api_key in error:
                error = error.replace(self.api_key, mask_secret(self.api_key))
            logger.warning("embedding_request_failed_fallback", endpoint=self.endpoint, error=error)
            return None

    @staticmethod
    def _parse_vector(payload: Any) -> list[float] | None:
        try:
            raw = payload["data"][0]["embedding"]
            vector = [float(v) for v in raw]
        except (KeyError, IndexError, TypeError, ValueError):
            logger.warning("embedding_malformed_response_fallback")
            return None
        return vector or None
