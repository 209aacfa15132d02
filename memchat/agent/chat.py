"""Chat service: the per-turn pipeline around the memory tiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from memchat.agent.session_locks import SessionLocks
from memchat.embeddings.provider import EmbeddingProvider
from memchat.errors import CompletionError
from memchat.logging import get_logger, session_context
from memchat.memory.context import ContextAssembler
from memchat.memory.log import LongTermMemoryStore, MessageLog
from memchat.memory.retrieval import SemanticRetriever
from memchat.memory.summarizer import Summarizer
from memchat.memory.trigger import SummarizationTrigger
from memchat.storage import create_backend

if TYPE_CHECKING:
    from memchat.config.schema import Config
    from memchat.providers.base import LLMProvider
    from memchat.storage.base import MemoryBackend

logger = get_logger(__name__)


@dataclass
class TurnResult:
    """Reply plus the debug stats reported to the caller."""

    reply: str
    debug: dict[str, Any] = field(default_factory=dict)
    summarized: bool = False


class ChatService:
    """
    Processes chat turns against bounded memory.

    Per user message, under the session's lock:
    1. append the user message
    2. check the summarization trigger, run a pass if it fires
    3. assemble the context
    4. call the completion provider
    5. append the assistant reply

    A completion failure raises :class:`CompletionError`; the user message
    stays stored. A summarization failure is logged and the turn goes on.
    """

    def __init__(
        self,
        backend: MemoryBackend,
        provider: LLMProvider,
        embeddings: EmbeddingProvider | None = None,
        model: str | None = None,
        max_tokens: int = 800,
        temperature: float = 0.7,
        max_short_term_rounds: int = 6,
        summary_trigger_rounds: int = 10,
        min_summary_batch: int = 5,
        summary_max_tokens: int = 800,
        summary_temperature: float = 0.3,
    ):
        self.backend = backend
        self.provider = provider
        self.embeddings = embeddings or EmbeddingProvider()
        self.model = model or provider.get_default_model()
        self.max_tokens = max_tokens
        self.temperature = temperature

        self.log = MessageLog(backend, self.embeddings)
        self.long_term = LongTermMemoryStore(backend, self.embeddings)
        self.trigger = SummarizationTrigger(
            self.log,
            threshold=summary_trigger_rounds,
            min_batch=min_summary_batch,
        )
        self.summarizer = Summarizer(
            self.log,
            self.long_term,
            provider,
            model=self.model,
            max_tokens=summary_max_tokens,
            temperature=summary_temperature,
        )
        self.context = ContextAssembler(
            self.log,
            self.long_term,
            max_short_term_rounds=max_short_term_rounds,
        )
        self.retriever = SemanticRetriever(backend, self.embeddings)
        self.locks = SessionLocks()

    @classmethod
    def from_config(
        cls,
        config: Config,
        provider: LLMProvider | None = None,
        backend: MemoryBackend | None = None,
    ) -> ChatService:
        """Wire a service from configuration; collaborators may be injected."""
        if provider is None:
            from memchat.providers.litellm_provider import LiteLLMProvider

            p = config.provider
            provider = LiteLLMProvider(
                api_key=p.resolved_api_key or None,
                api_base=p.api_base,
                default_model=p.model,
                extra_headers=p.extra_headers,
                resilience_config=p.resilience,
            )
        embeddings = EmbeddingProvider(
            endpoint=config.embedding_endpoint() if config.embedding.enabled else None,
            api_key=config.embedding_api_key(),
            model=config.embedding.model,
            timeout=config.embedding.timeout,
            fallback_dimensions=config.embedding.fallback_dimensions,
        )
        m = config.memory
        return cls(
            backend=backend or create_backend(config.storage),
            provider=provider,
            embeddings=embeddings,
            model=config.provider.model,
            max_tokens=config.provider.max_tokens,
            temperature=config.provider.temperature,
            max_short_term_rounds=m.max_short_term_rounds,
            summary_trigger_rounds=m.summary_trigger_rounds,
            min_summary_batch=m.min_summary_batch,
            summary_max_tokens=m.summary_max_tokens,
            summary_temperature=m.summary_temperature,
        )

    async def handle_turn(self, message: str, session_id: str = "default") -> TurnResult:
        """Process one user message and return the assistant reply."""
        with session_context(session_id):
            return await self.locks.run_exclusive(
                session_id, lambda: self._process_turn(session_id, message)
            )

    async def _process_turn(self, session_id: str, message: str) -> TurnResult:
        await self.log.append(session_id, "user", message)
        message_count = self.log.count_unsummarized(session_id)

        summarized = False
        if self.trigger.check(session_id):
            try:
                summarized = await self.summarizer.run(session_id)
            finally:
                # A pass that raised is still a failed pass.
                self.trigger.record_result(session_id, summarized)

        context = self.context.build(session_id)
        response = await self.provider.chat(
            messages=context,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        if response.is_error:
            raise CompletionError(response.content or "completion failed")
        reply = response.content
        if not isinstance(reply, str):
            raise CompletionError(f"Malformed completion response: {response!r}")

        await self.log.append(session_id, "assistant", reply)

        summary_count = len(self.long_term.list(session_id))
        debug = {
            "totalMessages": message_count + 1,
            "model": self.model,
            "contextLayers": self.context.describe(context, summary_count),
        }
        logger.info(
            "turn_completed",
            reply_chars=len(reply),
            context_messages=len(context),
            summarized=summarized,
        )
        return TurnResult(reply=reply, debug=debug, summarized=summarized)

    async def search(self, query: str, session_id: str = "default", limit: int = 5) -> list[dict[str, Any]]:
        """Rank the session's stored messages by similarity to *query*."""
        with session_context(session_id):
            return await self.retriever.search(session_id, query, limit)
