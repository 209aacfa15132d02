"""Chat-completion provider abstraction."""

from memchat.providers.base import LLMProvider, LLMResponse
from memchat.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
