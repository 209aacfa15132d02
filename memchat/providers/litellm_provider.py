"""Chat completions through LiteLLM (any OpenAI-compatible endpoint)."""

import asyncio
from typing import Any

import litellm
from litellm import acompletion

from memchat.logging import get_logger, mask_secret
from memchat.providers.base import LLMProvider, LLMResponse

logger = get_logger("memchat.providers.litellm")

# Extra wall-clock allowance on top of the client timeout before we give up.
_SAFETY_MARGIN_S = 30


class LiteLLMProvider(LLMProvider):
    """
    One non-streaming completion per call via ``litellm.acompletion``.

    ``api_base`` points at any OpenAI-compatible server; model names use
    LiteLLM's ``provider/model`` form. Failures never raise: they come back
    as an ``LLMResponse`` with ``finish_reason="error"`` and the key masked.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "openai/gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
        resilience_config: Any | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self.resilience = resilience_config

        litellm.suppress_debug_info = True
        litellm.drop_params = True

        if api_key:
            logger.info("provider_initialized", model=default_model, api_key=mask_secret(api_key))

    @staticmethod
    def _sanitize_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Keep only ``role`` and ``content``; a missing content becomes ``""``."""
        return [
            {"role": msg.get("role"), "content": msg.get("content") or ""}
            for msg in messages
        ]

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": self._sanitize_messages(messages),
            "max_tokens": max(1, max_tokens),
            "temperature": temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        if self.resilience is not None:
            kwargs["request_timeout"] = self.resilience.timeout
            kwargs["num_retries"] = self.resilience.max_retries
        return kwargs

    def _error(self, reason: str) -> LLMResponse:
        if self.api_key and self.api_key in reason:
            reason = reason.replace(self.api_key, mask_secret(self.api_key))
        return LLMResponse(content=f"Error calling LLM: {reason}", finish_reason="error")

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 800,
        temperature: float = 0.7,
    ) -> LLMResponse:
        model = model or self.default_model
        kwargs = self._build_kwargs(messages, model, max_tokens, temperature)
        logger.debug("llm_request", model=model, message_count=len(kwargs["messages"]))

        try:
            call = acompletion(**kwargs)
            if self.resilience is not None:
                response = await asyncio.wait_for(call, timeout=self.resilience.timeout + _SAFETY_MARGIN_S)
            else:
                response = await call
        except asyncio.TimeoutError:
            logger.error("llm_call_timeout", model=model)
            return self._error("request timed out")
        except Exception as e:
            error = self._error(str(e))
            logger.error("llm_call_failed", model=model, error=error.content)
            return error

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        choices = getattr(response, "choices", None)
        message = getattr(choices[0], "message", None) if choices else None
        if message is None:
            snippet = str(response)[:500]
            logger.error("llm_malformed_response", response=snippet)
            return self._error(f"malformed response: {snippet}")

        usage: dict[str, int] = {}
        raw_usage = getattr(response, "usage", None)
        if raw_usage:
            usage = {
                key: getattr(raw_usage, key)
                for key in ("prompt_tokens", "completion_tokens", "total_tokens")
                if isinstance(getattr(raw_usage, key, None), int)
            }

        return LLMResponse(
            content=message.content,
            finish_reason=choices[0].finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        return self.default_model
