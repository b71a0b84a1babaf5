"""
contact_sync/services/retry_coordinator.py

Re-dispatches only the retryable subset of a slice, with linear backoff,
and degrades to one-at-a-time submission after a group-level transport fault.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from contact_sync.domain.sync import BatchResult, RetryOutcome, SourceRecord
from contact_sync.services.dispatcher import BatchDispatcher

logger = logging.getLogger(__name__)


class RetryCoordinator:
    def __init__(
        self,
        dispatcher: BatchDispatcher,
        *,
        retry_base_delay_seconds: float = 2.0,
        fallback_record_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._dispatcher = dispatcher
        self._retry_base_delay_seconds = max(0.0, retry_base_delay_seconds)
        self._fallback_record_delay_seconds = max(0.0, fallback_record_delay_seconds)
        self._sleep = sleep

    def run(
        self,
        pending: Sequence[SourceRecord],
        concurrency_width: int,
        max_attempts: int = 3,
    ) -> RetryOutcome:
        """
        Dispatch ``pending`` at most ``max_attempts`` times.

        Records still retryable after the last attempt are returned in
        ``permanently_failed``; they stay unsynced and are picked up next run.
        Non-retryable failures are returned in ``dead_lettered``. A lost run
        lease stops further attempts and sets ``halted``.
        """

        total_attempts = max(1, max_attempts)
        outcome = RetryOutcome()
        remaining: list[SourceRecord] = list(pending)

        for attempt in range(1, total_attempts + 1):
            if not remaining:
                break
            if attempt > 1:
                delay = (attempt - 1) * self._retry_base_delay_seconds
                logger.info(
                    "Retrying failed creates attempt=%s/%s records=%s wait_seconds=%.2f",
                    attempt,
                    total_attempts,
                    len(remaining),
                    delay,
                )
                if delay > 0:
                    self._sleep(delay)

            result = self._dispatcher.dispatch(
                remaining,
                concurrency_width,
                group_fallback=self._submit_one_at_a_time,
            )
            outcome.created_keys.update(result.created_keys)
            outcome.dead_lettered.extend(result.permanently_failed)
            outcome.rejection_codes.update(result.rejection_codes)
            remaining = result.retryable_failed
            if result.halted:
                outcome.halted = True
                break

        outcome.permanently_failed = remaining
        if remaining:
            logger.warning(
                "Creates still failing after %s attempt(s) records=%s; deferred to next run",
                total_attempts,
                len(remaining),
            )
        return outcome

    def _submit_one_at_a_time(self, group: list[SourceRecord]) -> BatchResult:
        result = BatchResult()
        for index, record in enumerate(group):
            if index > 0 and self._fallback_record_delay_seconds > 0:
                self._sleep(self._fallback_record_delay_seconds)
            if not self._dispatcher.keep_alive():
                result.halted = True
                result.retryable_failed.extend(group[index:])
                break
            result.merge(self._dispatcher.submit_one(record))
        logger.info(
            "Sequential fallback complete records=%s created=%s retryable=%s",
            len(group),
            result.created,
            len(result.retryable_failed),
        )
        return result
