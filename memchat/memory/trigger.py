"""Decide when the unsummarized backlog of a session should be compressed."""

from __future__ import annotations

from collections import OrderedDict
from typing import TYPE_CHECKING

from memchat.logging import get_logger

if TYPE_CHECKING:
    from memchat.memory.log import MessageLog

logger = get_logger(__name__)


class SummarizationTrigger:
    """
    Level-triggered summarization policy.

    Fires when the number of unsummarized rounds (user turns) is a positive
    multiple of ``threshold`` and the backlog holds at least ``min_batch``
    messages. The check runs right after a user message is stored; at that
    point an alternating session holds ``2 * rounds - 1`` messages, so
    counting rounds is what makes every ``threshold`` round-trips fire.
    Checking twice at the same count fires twice.

    A session whose last pass failed is kept as pending and fires on the
    very next check (still subject to ``min_batch``), so a failed batch is
    retried instead of waiting for the count to cycle back to a multiple of
    ``threshold``.

    At most ``max_pending`` sessions are remembered; past that the oldest
    failure is forgotten and that session waits for its next multiple.
    """

    def __init__(
        self,
        log: MessageLog,
        threshold: int = 10,
        min_batch: int = 5,
        max_pending: int = 1024,
    ):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.log = log
        self.threshold = threshold
        self.min_batch = min_batch
        self.max_pending = max_pending
        self._pending_retry: OrderedDict[str, None] = OrderedDict()

    def check(self, session_id: str) -> bool:
        count = self.log.count_unsummarized(session_id)
        if count <= 0:
            return False
        rounds = self.log.count_unsummarized(session_id, role="user")
        retry = session_id in self._pending_retry
        if not retry and (rounds == 0 or rounds % self.threshold != 0):
            return False
        if count < self.min_batch:
            logger.debug("summary_trigger_batch_too_small", session_id=session_id, count=count)
            return False
        logger.info("summary_triggered", session_id=session_id, count=count, rounds=rounds, retry=retry)
        return True

    def record_result(self, session_id: str, success: bool) -> None:
        """Remember the outcome of a pass started by :meth:`check`."""
        if success:
            self._pending_retry.pop(session_id, None)
            return
        self._pending_retry[session_id] = None
        self._pending_retry.move_to_end(session_id)
        while len(self._pending_retry) > self.max_pending:
            evicted, _ = self._pending_retry.popitem(last=False)
            logger.warning("summary_retry_dropped", session_id=evicted, max_pending=self.max_pending)

    def is_pending(self, session_id: str) -> bool:
        return session_id in self._pending_retry
