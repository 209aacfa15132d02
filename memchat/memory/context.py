"""Assemble the prompt messages for a new turn."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from memchat.memory.log import LongTermMemoryStore, MessageLog

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly assistant with memory. You remember earlier parts of "
    "the conversation and use that history to give coherent, consistent replies."
)

SUMMARY_HEADER = "Summary of earlier conversation:"


class ContextAssembler:
    """
    Builds the message list sent to the completion provider.

    Layout, in order:
    1. the fixed persona system message
    2. one system message with every long-term summary (only if any exist)
    3. the short-term window: the last ``max_short_term_rounds * 2``
       unsummarized turns, oldest first, roles preserved
    """

    def __init__(
        self,
        log: MessageLog,
        long_term: LongTermMemoryStore,
        max_short_term_rounds: int = 6,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        self.log = log
        self.long_term = long_term
        self.max_short_term_rounds = max_short_term_rounds
        self.system_prompt = system_prompt

    @property
    def window_size(self) -> int:
        return self.max_short_term_rounds * 2

    def build(self, session_id: str) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.system_prompt}]

        summaries = self.long_term.list(session_id)
        if summaries:
            summary_text = "\n\n".join(s["summary"] for s in summaries)
            messages.append({"role": "system", "content": f"{SUMMARY_HEADER}\n{summary_text}"})

        messages.extend(self.log.recent(session_id, self.window_size))
        return messages

    @staticmethod
    def describe(messages: list[dict[str, Any]], summary_count: int) -> dict[str, int]:
        """Layer counts for a context built by :meth:`build`."""
        fixed = 1 + (1 if summary_count > 0 else 0)
        return {
            "longTermMemory": summary_count,
            "shortTermRounds": max(0, len(messages) - fixed) // 2,
        }
