"""
contact_sync/services/sync_driver.py

One time-boxed sync run: resolve the synced set, diff the source against it,
create what is missing, checkpoint progress.

Run stages
----------
  lease -> resolve synced -> fetch source -> compute pending
        -> dispatch windows until empty or out of budget
        -> persist -> summary -> release lease

The budget is polled between dispatch windows, so a run can overrun it by at
most one window. Created keys are persisted even when the dispatch loop raises.
The run lease is renewed between dispatch groups; losing it stops the run.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from contact_sync.config import SyncSettings
from contact_sync.domain.identity import IdentitySet
from contact_sync.domain.ports import FieldMapper, SinkProvider, SourceProvider
from contact_sync.domain.sync import RetryOutcome, RunSummary, SourceRecord, SyncStatus
from contact_sync.errors import SinkRejectionError
from contact_sync.logging_utils import log_event
from contact_sync.repositories.checkpoint_store import CheckpointStore
from contact_sync.repositories.lease import RunLease
from contact_sync.services.dispatcher import BatchDispatcher
from contact_sync.services.retry_coordinator import RetryCoordinator

logger = logging.getLogger(__name__)


def _distinct_keys(records: Iterable[SourceRecord]) -> list[str]:
    return list(dict.fromkeys(record.identity_key for record in records))


def compute_pending(
    records: Iterable[SourceRecord],
    synced: IdentitySet,
    excluded: IdentitySet | None = None,
) -> list[SourceRecord]:
    """
    Source records absent from ``synced`` and ``excluded``, in source order.
    A repeated identity key is kept once (first occurrence).
    """

    pending: list[SourceRecord] = []
    seen: set[str] = set()
    for record in records:
        key = record.identity_key
        if key in seen or key in synced or (excluded is not None and key in excluded):
            continue
        seen.add(key)
        pending.append(record)
    return pending


class SyncDriver:
    def __init__(
        self,
        *,
        source: SourceProvider,
        sink: SinkProvider,
        mapper: FieldMapper,
        checkpoint: CheckpointStore,
        dead_letters: CheckpointStore,
        settings: SyncSettings,
        lease: RunLease | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._sink = sink
        self._checkpoint = checkpoint
        self._dead_letters = dead_letters
        self._settings = settings
        self._lease = lease
        self._lease_renewed_at = 0.0
        self._clock = clock
        dispatcher = BatchDispatcher(
            sink=sink,
            mapper=mapper,
            group_pause_seconds=settings.group_pause_seconds,
            sleep=sleep,
            heartbeat=self._keep_lease,
        )
        self._coordinator = RetryCoordinator(
            dispatcher,
            retry_base_delay_seconds=settings.retry_base_delay_seconds,
            fallback_record_delay_seconds=settings.fallback_record_delay_seconds,
            sleep=sleep,
        )

    @property
    def checkpoint(self) -> CheckpointStore:
        return self._checkpoint

    def run_once(self, *, force_refresh: bool = False, reset_dead_letters: bool = False) -> RunSummary:
        """
        Execute one run. ``force_refresh`` discards the checkpoint first so
        the synced set is re-derived from the sink. ``reset_dead_letters``
        empties the dead-letter log so rejected records are attempted again.
        """

        started = self._clock()
        if self._lease is not None and not self._lease.acquire():
            logger.info("Sync run skipped: another run holds the lease")
            return RunSummary(
                created=0,
                failed=0,
                dead_lettered=0,
                elapsed_seconds=0.0,
                total=0,
                synced=0,
                skipped=True,
            )
        self._lease_renewed_at = self._clock()

        try:
            summary = self._run(
                started=started,
                force_refresh=force_refresh,
                reset_dead_letters=reset_dead_letters,
            )
        finally:
            if self._lease is not None:
                self._lease.release()

        log_event(
            logger,
            logging.INFO,
            "sync_run_summary",
            created=summary.created,
            failed=summary.failed,
            dead_lettered=summary.dead_lettered,
            elapsed_seconds=round(summary.elapsed_seconds, 2),
            total=summary.total,
            synced=summary.synced,
            remaining=summary.remaining,
            timed_out=summary.timed_out,
            lease_lost=summary.lease_lost,
        )
        return summary

    def check_status(self, *, live: bool = False) -> SyncStatus:
        """
        Count source records, synced records and dead letters.

        ``live`` forces a sink query instead of trusting the checkpoint.
        """

        synced = self._sink.query_identity_keys() if live else self._resolve_synced()
        source_keys = _distinct_keys(self._source.list_records())
        dead = self._dead_letters.load()
        synced_count = sum(1 for key in source_keys if key in synced)
        excluded = sum(1 for key in source_keys if key in dead and key not in synced)
        return SyncStatus(total=len(source_keys), synced=synced_count, dead_lettered=excluded)

    def _resolve_synced(self) -> IdentitySet:
        synced = self._checkpoint.load()
        if synced:
            logger.info("Synced set restored from checkpoint size=%s", len(synced))
            return synced

        synced = self._sink.query_identity_keys()
        logger.info("Synced set rebuilt from sink query size=%s", len(synced))
        if synced:
            self._checkpoint.append(synced.keys())
        return synced

    def _keep_lease(self) -> bool:
        """
        Dispatcher heartbeat: renew the run lease once a third of its TTL has
        passed. False once another run has taken it over.
        """

        if self._lease is None:
            return True
        now = self._clock()
        if now - self._lease_renewed_at < self._lease.ttl_seconds / 3:
            return True
        if not self._lease.renew():
            return False
        self._lease_renewed_at = now
        return True

    def _check_window_rejection(self, window: list[SourceRecord], outcome: RetryOutcome) -> None:
        threshold = self._settings.rejection_abort_threshold
        if threshold <= 0 or len(window) < threshold or len(outcome.dead_lettered) != len(window):
            return
        codes = {outcome.rejection_codes.get(record.identity_key) for record in window}
        if len(codes) != 1 or None in codes:
            return
        code = codes.pop()
        logger.error(
            "Sink rejected whole window code=%s records=%s; aborting run without dead-lettering",
            code,
            len(window),
        )
        raise SinkRejectionError(code, len(window))

    def _run(self, *, started: float, force_refresh: bool, reset_dead_letters: bool = False) -> RunSummary:
        if force_refresh:
            self._checkpoint.clear()
        if reset_dead_letters:
            logger.info("Dead-letter log reset requested")
            self._dead_letters.clear()

        synced = self._resolve_synced()
        records = self._source.list_records()
        source_keys = _distinct_keys(records)
        dead = self._dead_letters.load()
        pending = compute_pending(records, synced, dead)
        logger.info(
            "Sync pending computed total=%s synced=%s dead_letters=%s pending=%s",
            len(source_keys),
            len(synced),
            len(dead),
            len(pending),
        )

        created_keys: dict[str, str] = {}
        dead_lettered: list[SourceRecord] = []
        failed = 0
        timed_out = False
        lease_lost = False
        budget = self._settings.execution_budget_seconds
        window = max(1, self._settings.window_size)

        try:
            for start in range(0, len(pending), window):
                elapsed = self._clock() - started
                if elapsed >= budget:
                    timed_out = True
                    logger.warning(
                        "Execution budget reached elapsed_seconds=%.1f budget_seconds=%.1f processed=%s pending=%s",
                        elapsed,
                        budget,
                        start,
                        len(pending),
                    )
                    break
                window_records = pending[start : start + window]
                outcome = self._coordinator.run(
                    window_records,
                    self._settings.concurrency_width,
                    self._settings.max_attempts,
                )
                self._check_window_rejection(window_records, outcome)
                created_keys.update(outcome.created_keys)
                dead_lettered.extend(outcome.dead_lettered)
                failed += len(outcome.permanently_failed)
                if outcome.halted:
                    lease_lost = True
                    logger.warning("Run lease lost processed=%s pending=%s; stopping", start, len(pending))
                    break
        finally:
            self._persist(created_keys, dead_lettered, synced)

        for key, handle in created_keys.items():
            synced.add(key, handle)
        for record in dead_lettered:
            dead.add(record.identity_key)

        synced_count = sum(1 for key in source_keys if key in synced)
        excluded = sum(1 for key in source_keys if key in dead and key not in synced)
        summary = RunSummary(
            created=len(created_keys),
            failed=failed + len(dead_lettered),
            dead_lettered=len(dead_lettered),
            elapsed_seconds=self._clock() - started,
            total=len(source_keys),
            synced=synced_count,
            excluded=excluded,
            timed_out=timed_out,
            lease_lost=lease_lost,
        )

        if summary.remaining == 0:
            # Campaign complete; the next run re-derives from the sink, which
            # corrects any drift the checkpoint accumulated.
            logger.info("Backlog drained total=%s; discarding checkpoint", summary.total)
            self._checkpoint.clear()
        return summary

    def _persist(
        self,
        created_keys: dict[str, str],
        dead_lettered: list[SourceRecord],
        synced: IdentitySet,
    ) -> None:
        if created_keys:
            self._checkpoint.append(list(created_keys), baseline=synced)
        if dead_lettered:
            self._dead_letters.append([record.identity_key for record in dead_lettered])
            for record in dead_lettered:
                log_event(
                    logger,
                    logging.ERROR,
                    "sync_dead_letter",
                    identity_key=record.identity_key,
                    display_name=record.display_name,
                )
