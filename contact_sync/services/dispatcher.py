"""
contact_sync/services/dispatcher.py

Batch dispatcher: fans create requests out in bounded groups and classifies
every response.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence

from contact_sync.domain.ports import FieldMapper, SinkProvider
from contact_sync.domain.sync import BatchResult, CreateFailure, CreateResult, CreateSuccess, SourceRecord
from contact_sync.errors import RecordMappingError, SinkTransportError, SyncError
from contact_sync.failure_codes import is_rate_limited, is_retryable

logger = logging.getLogger(__name__)

GroupFallback = Callable[[list[SourceRecord]], BatchResult]


class GroupTransportError(SyncError):
    """
    Every request of a group failed below the HTTP status level.

    ``records`` are the group's records that were submitted; ``partial``
    holds outcomes decided before any request was sent (mapping failures).
    """

    def __init__(self, records: list[SourceRecord], partial: BatchResult, errors: list[Exception]) -> None:
        self.records = records
        self.partial = partial
        self.errors = errors
        super().__init__(f"group transport fault: {len(errors)} request(s) failed; first error: {errors[0]}")


class BatchDispatcher:
    """
    Groups run sequentially with a fixed pause between them; requests inside
    a group run concurrently.

    ``heartbeat`` is polled before every group and must return False once
    the run no longer owns the sink; dispatch then stops and reports the
    unsent records as retryable with ``halted`` set.
    """

    def __init__(
        self,
        *,
        sink: SinkProvider,
        mapper: FieldMapper,
        group_pause_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        heartbeat: Callable[[], bool] | None = None,
    ) -> None:
        self._sink = sink
        self._mapper = mapper
        self._group_pause_seconds = max(0.0, group_pause_seconds)
        self._sleep = sleep
        self._heartbeat = heartbeat

    def keep_alive(self) -> bool:
        return self._heartbeat is None or self._heartbeat()

    def dispatch(
        self,
        pending: Sequence[SourceRecord],
        concurrency_width: int,
        *,
        group_fallback: GroupFallback | None = None,
    ) -> BatchResult:
        """
        Submit ``pending`` in consecutive groups of ``concurrency_width``.

        A group-level transport fault is handed to ``group_fallback`` when
        given, otherwise re-raised.
        """

        width = max(1, concurrency_width)
        result = BatchResult()
        for index, start in enumerate(range(0, len(pending), width)):
            if index > 0 and self._group_pause_seconds > 0:
                self._sleep(self._group_pause_seconds)
            if not self.keep_alive():
                logger.warning("Dispatch halted: run lease lost unsent=%s", len(pending) - start)
                result.halted = True
                result.retryable_failed.extend(pending[start:])
                break
            group = list(pending[start : start + width])
            try:
                result.merge(self.dispatch_group(group))
            except GroupTransportError as exc:
                if group_fallback is None:
                    raise
                logger.warning(
                    "Group transport fault group=%s size=%s error=%s; resubmitting one at a time",
                    index,
                    len(exc.records),
                    exc.errors[0],
                )
                result.merge(exc.partial)
                result.merge(group_fallback(exc.records))
            if result.halted:
                result.retryable_failed.extend(pending[start + width :])
                break
        return result

    def dispatch_group(self, group: Sequence[SourceRecord]) -> BatchResult:
        """
        Issue all creates of one group concurrently and wait for every one to settle.
        """

        result = BatchResult()
        prepared = self._prepare(group, result)
        if not prepared:
            return result

        transport_errors: list[Exception] = []
        outcomes: list[tuple[SourceRecord, CreateResult | Exception]] = []
        with ThreadPoolExecutor(max_workers=len(prepared), thread_name_prefix="sink-create") as executor:
            futures = [
                (record, executor.submit(self._sink.create_record, properties))
                for record, properties in prepared
            ]
            for record, future in futures:
                try:
                    outcomes.append((record, future.result()))
                except SinkTransportError as exc:
                    transport_errors.append(exc)
                    outcomes.append((record, exc))
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Unhandled sink failure record=%s", record.label)
                    outcomes.append((record, exc))

        if len(transport_errors) == len(prepared):
            raise GroupTransportError([record for record, _ in prepared], result, transport_errors)

        for record, outcome in outcomes:
            self._classify(record, outcome, result)
        return result

    def submit_one(self, record: SourceRecord) -> BatchResult:
        """
        Submit a single record synchronously with the same classification rules.
        """

        result = BatchResult()
        prepared = self._prepare([record], result)
        if not prepared:
            return result
        _, properties = prepared[0]
        try:
            outcome: CreateResult | Exception = self._sink.create_record(properties)
        except SinkTransportError as exc:
            outcome = exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled sink failure record=%s", record.label)
            outcome = exc
        self._classify(record, outcome, result)
        return result

    def _prepare(
        self,
        group: Sequence[SourceRecord],
        result: BatchResult,
    ) -> list[tuple[SourceRecord, dict]]:
        # Mapping is deterministic: a record that fails now fails on every
        # attempt, so it is dead-lettered instead of retried.
        prepared: list[tuple[SourceRecord, dict]] = []
        for record in group:
            try:
                prepared.append((record, self._mapper(record)))
            except RecordMappingError as exc:
                logger.warning("Record not mappable record=%s error=%s", record.label, exc)
                result.permanently_failed.append(record)
            except Exception:  # noqa: BLE001
                logger.exception("Field mapper failed record=%s", record.label)
                result.permanently_failed.append(record)
        return prepared

    @staticmethod
    def _classify(
        record: SourceRecord,
        outcome: CreateResult | Exception,
        result: BatchResult,
    ) -> None:
        if isinstance(outcome, CreateSuccess):
            result.created_keys[record.identity_key] = outcome.handle
            return

        if isinstance(outcome, CreateFailure):
            if is_rate_limited(outcome.code):
                logger.debug("Rate limited record=%s", record.label)
                result.retryable_failed.append(record)
            elif not is_retryable(outcome.code):
                logger.warning(
                    "Create rejected permanently record=%s code=%s status=%s message=%s",
                    record.label,
                    outcome.code,
                    outcome.status_code,
                    outcome.message,
                )
                result.permanently_failed.append(record)
                result.rejection_codes[record.identity_key] = outcome.code
            else:
                logger.warning(
                    "Create failed record=%s code=%s status=%s message=%s",
                    record.label,
                    outcome.code,
                    outcome.status_code,
                    outcome.message,
                )
                result.retryable_failed.append(record)
            return

        logger.warning("Create request error record=%s error=%s", record.label, outcome)
        result.retryable_failed.append(record)
