"""Tests for the summarization trigger policy."""

import pytest

from memchat.memory.log import MessageLog
from memchat.memory.trigger import SummarizationTrigger
from memchat.storage import InMemoryBackend


async def _fill(log: MessageLog, session_id: str, n: int) -> None:
    for i in range(n):
        await log.append(session_id, "user" if i % 2 == 0 else "assistant", f"msg{i}", timestamp=i + 1)


class TestSummarizationTrigger:
    @pytest.mark.asyncio
    async def test_fires_only_on_multiples_of_threshold(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10, min_batch=5)
        fired = []
        for i in range(1, 21):
            await log.append("s1", "user", f"m{i}", timestamp=i)
            if trigger.check("s1"):
                fired.append(i)
        assert fired == [10, 20]

    @pytest.mark.asyncio
    async def test_alternating_session_fires_every_threshold_rounds(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10, min_batch=5)
        fired = []
        for i in range(1, 21):
            await log.append("s1", "user", f"q{i}", timestamp=2 * i)
            if trigger.check("s1"):
                fired.append(i)
            await log.append("s1", "assistant", f"a{i}", timestamp=2 * i + 1)
        # checked right after each user message: 1, 3, ..., 39 messages
        assert fired == [10, 20]

    @pytest.mark.asyncio
    async def test_first_message_does_not_fire(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log)
        await log.append("s1", "user", "Hi")
        assert log.count_unsummarized("s1") == 1
        assert trigger.check("s1") is False

    @pytest.mark.asyncio
    async def test_no_messages_never_fires(self) -> None:
        trigger = SummarizationTrigger(MessageLog(InMemoryBackend()), threshold=1, min_batch=0)
        assert trigger.check("empty") is False

    @pytest.mark.asyncio
    async def test_small_batch_is_skipped(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=2, min_batch=5)
        await _fill(log, "s1", 4)
        assert log.count_unsummarized("s1", role="user") == 2
        assert trigger.check("s1") is False
        await _fill(log, "s1", 4)
        assert trigger.check("s1") is True

    @pytest.mark.asyncio
    async def test_is_level_triggered(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10)
        await _fill(log, "s1", 20)
        assert trigger.check("s1") is True
        assert trigger.check("s1") is True

    @pytest.mark.asyncio
    async def test_summarized_rounds_no_longer_count(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10)
        await _fill(log, "s1", 20)
        log.mark_summarized(m["id"] for m in log.unsummarized_batch("s1"))
        assert trigger.check("s1") is False
        await _fill(log, "s1", 2)
        assert trigger.check("s1") is False

    @pytest.mark.asyncio
    async def test_failed_pass_retries_on_next_check(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10)
        await _fill(log, "s1", 20)
        assert trigger.check("s1") is True
        trigger.record_result("s1", False)
        assert trigger.is_pending("s1")

        await _fill(log, "s1", 1)  # 11 rounds: not a multiple, still fires
        assert trigger.check("s1") is True

        trigger.record_result("s1", True)
        assert not trigger.is_pending("s1")
        await _fill(log, "s1", 1)  # 12 rounds
        assert trigger.check("s1") is False

    @pytest.mark.asyncio
    async def test_pending_retry_still_respects_min_batch(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10, min_batch=5)
        await _fill(log, "s1", 3)
        trigger.record_result("s1", False)
        assert trigger.check("s1") is False

    @pytest.mark.asyncio
    async def test_pending_retry_is_per_session(self) -> None:
        log = MessageLog(InMemoryBackend())
        trigger = SummarizationTrigger(log, threshold=10)
        await _fill(log, "a", 7)
        await _fill(log, "b", 7)
        trigger.record_result("a", False)
        assert trigger.check("a") is True
        assert trigger.check("b") is False

    def test_rejects_non_positive_threshold(self) -> None:
        with pytest.raises(ValueError):
            SummarizationTrigger(MessageLog(InMemoryBackend()), threshold=0)

    def test_pending_set_is_bounded_oldest_first(self) -> None:
        trigger = SummarizationTrigger(MessageLog(InMemoryBackend()), max_pending=2)
        trigger.record_result("a", False)
        trigger.record_result("b", False)
        trigger.record_result("a", False)  # refreshed, now newest
        trigger.record_result("c", False)
        assert not trigger.is_pending("b")
        assert trigger.is_pending("a")
        assert trigger.is_pending("c")

    def test_success_clears_pending(self) -> None:
        trigger = SummarizationTrigger(MessageLog(InMemoryBackend()))
        trigger.record_result("a", False)
        trigger.record_result("a", True)
        trigger.record_result("never-failed", True)
        assert not trigger.is_pending("a")
        assert not trigger.is_pending("never-failed")
