"""Compress a session's unsummarized backlog into one long-term summary."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from memchat.logging import get_logger

if TYPE_CHECKING:
    from memchat.memory.log import LongTermMemoryStore, MessageLog
    from memchat.providers.base import LLMProvider

logger = get_logger(__name__)

_ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


class Summarizer:
    """Runs one summarization pass per call.

    A pass reads the whole unsummarized batch, asks the completion provider
    for a summary, stores it, then marks exactly the consumed ids. A provider
    failure or a summary that cannot be stored leaves both the summary store
    and the flags untouched.
    """

    def __init__(
        self,
        log: MessageLog,
        long_term: LongTermMemoryStore,
        provider: LLMProvider,
        model: str | None = None,
        max_tokens: int = 800,
        temperature: float = 0.3,
    ):
        self.log = log
        self.long_term = long_term
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @staticmethod
    def render_transcript(batch: list[dict[str, Any]]) -> str:
        """One ``Label: content`` line per turn, in batch order."""
        return "\n".join(
            f"{_ROLE_LABELS.get(m['role'], str(m['role']).capitalize())}: {m['content']}"
            for m in batch
        )

    @staticmethod
    def build_prompt(transcript: str) -> list[dict[str, str]]:
        return [
            {
                "role": "system",
                "content": (
                    "You are a conversation summarization assistant. Compress the conversation "
                    "into a concise summary that keeps the key information."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Summarize the following conversation and extract:\n"
                    "1. Facts about the user (name, preferences, personal situation, etc.)\n"
                    "2. The main topics discussed\n"
                    "3. Important decisions or conclusions\n\n"
                    f"Conversation:\n{transcript}\n\n"
                    "Write the summary concisely, in the same language the conversation uses."
                ),
            },
        ]

    async def run(self, session_id: str) -> bool:
        """Summarize the current unsummarized batch of *session_id*.

        Returns True when a summary was stored (or there was nothing to do),
        False when the pass was abandoned.
        """
        batch = self.log.unsummarized_batch(session_id)
        if not batch:
            return True

        messages = self.build_prompt(self.render_transcript(batch))
        try:
            response = await self.provider.chat(
                messages=messages,
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception:
            logger.exception("summary_provider_call_failed", session_id=session_id, batch_size=len(batch))
            return False

        summary = (response.content or "").strip()
        if response.is_error or not summary:
            logger.warning(
                "summary_generation_failed",
                session_id=session_id,
                batch_size=len(batch),
                error=response.content if response.is_error else "(empty summary)",
            )
            return False

        # Storage errors propagate; they are fatal for the whole turn.
        await self.long_term.append(session_id, summary)
        self.log.mark_summarized(m["id"] for m in batch)

        logger.info("summary_stored", session_id=session_id, compressed_messages=len(batch))
        return True
