"""
tests/test_sync_driver.py

End-to-end driver runs against an in-memory source, sink and key-value store.

Coverage
--------
- Full run against a partially populated sink, then a no-op rerun
- Convergence across budget-limited runs without duplicate creates
- Budget overrun bounded by one window
- Lease contention skips the run
- force_refresh discards a stale checkpoint
- Created keys persisted when the dispatch loop raises
- An unexpected mapper error affects only its own record
- A window rejected wholesale aborts the run; the dead-letter log can be reset
- The run lease is renewed through long windows and a lost lease stops dispatch
- Dead-lettered records excluded from later runs and from the backlog
- Missing configuration fails before any I/O
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from contact_sync import config
from contact_sync.domain.identity import IdentitySet
from contact_sync.domain.sync import CreateFailure
from contact_sync.errors import SinkRejectionError, SyncConfigurationError
from contact_sync.mappers.contact_mapper import NotionContactMapper
from contact_sync.repositories.checkpoint_store import CheckpointStore
from contact_sync.repositories.kv_store import InMemoryKeyValueStore
from contact_sync.repositories.lease import RunLease
from contact_sync.services.sync_driver import SyncDriver, compute_pending
from contact_sync.services.sync_service import build_sync_driver
from tests.conftest import FakeSink, FakeSource, UnreachableStore, make_record, make_records, rate_limited


class TestComputePending:
    def test_keeps_source_order_and_drops_known_keys(self) -> None:
        records = make_records(5)

        pending = compute_pending(records, IdentitySet(["people/c2"]), IdentitySet(["people/c4"]))

        assert [r.identity_key for r in pending] == ["people/c1", "people/c3", "people/c5"]

    def test_repeated_key_kept_once(self) -> None:
        records = [make_record(1), make_record(1, name="Duplicate"), make_record(2)]

        pending = compute_pending(records, IdentitySet())

        assert [r.display_name for r in pending] == ["Contact 1", "Contact 2"]


class TestFullRun:
    def test_creates_only_missing_records(self, build_driver, fast_settings) -> None:
        sink = FakeSink(existing=["people/c1", "people/c2"])
        driver = build_driver(FakeSource(make_records(12)), sink, fast_settings)

        summary = driver.run_once()

        assert summary.created == 10
        assert summary.failed == 0
        assert summary.total == 12
        assert summary.remaining == 0
        assert summary.timed_out is False
        assert sorted(sink.created) == sorted(f"people/c{i}" for i in range(3, 13))

        status = driver.check_status()
        assert status.remaining == 0
        assert status.percent == 100.0

    def test_rerun_creates_nothing(self, build_driver, fast_settings) -> None:
        sink = FakeSink(existing=["people/c1"])
        driver = build_driver(FakeSource(make_records(6)), sink, fast_settings)

        driver.run_once()
        second = driver.run_once()

        assert second.created == 0
        assert len(sink.created) == 5

    def test_empty_source_is_complete(self, build_driver, fast_settings) -> None:
        summary = build_driver(FakeSource([]), FakeSink(), fast_settings).run_once()

        assert summary.total == 0
        assert summary.remaining == 0

    def test_duplicate_source_keys_created_once(self, build_driver, fast_settings) -> None:
        sink = FakeSink()
        source = FakeSource([make_record(1), make_record(1), make_record(2)])

        summary = build_driver(source, sink, fast_settings).run_once()

        assert summary.total == 2
        assert summary.created == 2
        assert sink.calls.count("people/c1") == 1


class TestBudget:
    def test_converges_across_budget_limited_runs(self, build_driver, fast_settings, clock) -> None:
        settings = replace(fast_settings, execution_budget_seconds=30.0)
        sink = FakeSink(clock=clock, request_seconds=10.0)
        driver = build_driver(FakeSource(make_records(12)), sink, settings)

        summaries = [driver.run_once() for _ in range(3)]

        assert [s.created for s in summaries] == [5, 5, 2]
        assert [s.timed_out for s in summaries] == [True, True, False]
        assert summaries[-1].remaining == 0
        assert len(sink.created) == len(set(sink.created)) == 12

    def test_overrun_bounded_by_one_window(self, build_driver, fast_settings, clock) -> None:
        settings = replace(fast_settings, execution_budget_seconds=30.0)
        sink = FakeSink(clock=clock, request_seconds=10.0)

        summary = build_driver(FakeSource(make_records(12)), sink, settings).run_once()

        # One window of five requests at ten seconds each.
        assert summary.elapsed_seconds <= 30.0 + 50.0
        assert summary.remaining == 7


class TestRetriesAcrossRuns:
    def test_deferred_record_retried_next_run(self, build_driver, fast_settings) -> None:
        attempts_before_success = {"people/c3": 3}
        sink = FakeSink(
            behavior=lambda key, attempt: rate_limited()
            if attempt <= attempts_before_success.get(key, 0)
            else None
        )
        driver = build_driver(FakeSource(make_records(5)), sink, fast_settings)

        first = driver.run_once()
        second = driver.run_once()

        assert first.created == 4
        assert first.failed == 1
        assert first.dead_lettered == 0
        assert first.remaining == 1
        assert second.created == 1
        assert second.remaining == 0
        assert sink.calls.count("people/c1") == 1

    def test_dead_letter_excluded_from_later_runs(self, build_driver, fast_settings) -> None:
        rejected = CreateFailure(code="validation_error", message="bad phone", status_code=400)
        sink = FakeSink(behavior=lambda key, attempt: rejected if key == "people/c2" else None)
        driver = build_driver(FakeSource(make_records(4)), sink, fast_settings)

        first = driver.run_once()
        second = driver.run_once()

        assert first.created == 3
        assert first.dead_lettered == 1
        assert first.failed == 1
        assert first.remaining == 0
        assert second.created == 0
        assert sink.calls.count("people/c2") == 1

        status = driver.check_status(live=True)
        assert status.dead_lettered == 1
        assert status.remaining == 0


    def test_unexpected_mapper_error_does_not_block_later_records(self, kv_store, fast_settings, clock) -> None:
        mapper = NotionContactMapper()

        def flaky_mapper(record):
            if record.identity_key == "people/c7":
                raise ValueError("unexpected payload shape")
            return mapper(record)

        sink = FakeSink()
        driver = SyncDriver(
            source=FakeSource(make_records(12)),
            sink=sink,
            mapper=flaky_mapper,
            checkpoint=CheckpointStore(kv_store, namespace="synced"),
            dead_letters=CheckpointStore(kv_store, namespace="dead"),
            settings=fast_settings,
            clock=clock,
            sleep=clock.sleep,
        )

        first = driver.run_once()
        second = driver.run_once()

        assert first.created == 11
        assert first.dead_lettered == 1
        assert first.remaining == 0
        assert "people/c12" in sink.created
        assert second.created == 0

    def test_whole_window_rejection_aborts_without_dead_letters(self, build_driver, fast_settings) -> None:
        schema = {"broken": True}
        rejected = CreateFailure(code="validation_error", message="Google Contact ID is not a property", status_code=400)
        sink = FakeSink(behavior=lambda key, attempt: rejected if schema["broken"] else None)
        driver = build_driver(FakeSource(make_records(10)), sink, fast_settings)

        with pytest.raises(SinkRejectionError) as exc_info:
            driver.run_once()

        assert exc_info.value.code == "validation_error"
        assert driver.check_status(live=True).remaining == 10

        schema["broken"] = False
        recovered = driver.run_once()

        assert recovered.created == 10
        assert recovered.remaining == 0

    def test_small_rejection_window_is_dead_lettered(self, build_driver, fast_settings) -> None:
        rejected = CreateFailure(code="validation_error", message="bad phone", status_code=400)
        sink = FakeSink(behavior=lambda key, attempt: rejected)
        driver = build_driver(FakeSource(make_records(3)), sink, fast_settings)

        summary = driver.run_once()

        assert summary.dead_lettered == 3
        assert summary.remaining == 0

    def test_reset_dead_letters_retries_rejected_records(self, build_driver, fast_settings) -> None:
        schema = {"broken": True}
        rejected = CreateFailure(code="validation_error", message="bad phone", status_code=400)
        sink = FakeSink(behavior=lambda key, attempt: rejected if schema["broken"] and key == "people/c2" else None)
        driver = build_driver(FakeSource(make_records(4)), sink, fast_settings)

        assert driver.run_once().dead_lettered == 1
        schema["broken"] = False

        assert driver.run_once(force_refresh=True).created == 0

        reset = driver.run_once(reset_dead_letters=True)

        assert reset.created == 1
        assert "people/c2" in sink.created
        assert driver.check_status(live=True).dead_lettered == 0


class TestCheckpointHandling:
    def test_stale_checkpoint_hides_record_until_force_refresh(self, build_driver, fast_settings) -> None:
        sink = FakeSink()
        driver = build_driver(FakeSource(make_records(3)), sink, fast_settings)
        driver.checkpoint.append(["people/c3"])

        assert driver.run_once().created == 2
        assert "people/c3" not in sink.created

        driver.checkpoint.append(["people/c3"])
        refreshed = driver.run_once(force_refresh=True)

        assert refreshed.created == 1
        assert "people/c3" in sink.created

    def test_progress_persisted_when_dispatch_raises(self, kv_store, fast_settings, clock) -> None:
        settings = replace(fast_settings, retry_base_delay_seconds=1.0)

        def interrupted_sleep(seconds: float) -> None:
            raise RuntimeError("worker shutting down")

        checkpoint = CheckpointStore(kv_store, namespace="synced")
        driver = SyncDriver(
            source=FakeSource(make_records(10)),
            sink=FakeSink(behavior=lambda key, attempt: rate_limited() if key == "people/c7" else None),
            mapper=NotionContactMapper(),
            checkpoint=checkpoint,
            dead_letters=CheckpointStore(kv_store, namespace="dead"),
            settings=settings,
            clock=clock,
            sleep=interrupted_sleep,
        )

        with pytest.raises(RuntimeError):
            driver.run_once()

        assert {f"people/c{i}" for i in range(1, 6)} <= set(checkpoint.load())

    def test_partial_checkpoint_keeps_sink_baseline(self, build_driver, fast_settings, clock) -> None:
        settings = replace(fast_settings, execution_budget_seconds=30.0)
        sink = FakeSink(existing=["people/c1", "people/c2"], clock=clock, request_seconds=10.0)
        driver = build_driver(FakeSource(make_records(12)), sink, settings)

        driver.run_once()

        assert {"people/c1", "people/c2"} <= set(driver.checkpoint.load())


class TestLease:
    def test_run_skipped_while_lease_held(self, build_driver, fast_settings, kv_store) -> None:
        source = FakeSource(make_records(3))
        sink = FakeSink()
        driver = build_driver(source, sink, fast_settings, lease=RunLease(kv_store, name="sync", ttl_seconds=300))
        RunLease(kv_store, name="sync", ttl_seconds=300).acquire()

        summary = driver.run_once()

        assert summary.skipped is True
        assert source.list_calls == 0
        assert sink.calls == []

    def test_lease_released_after_run(self, build_driver, fast_settings, kv_store) -> None:
        driver = build_driver(
            FakeSource(make_records(2)),
            FakeSink(),
            fast_settings,
            lease=RunLease(kv_store, name="sync", ttl_seconds=300),
        )

        driver.run_once()

        assert RunLease(kv_store, name="sync", ttl_seconds=300).acquire() is True


    def test_lease_renewed_through_long_window(self, build_driver, fast_settings, kv_store, clock) -> None:
        settings = replace(fast_settings, concurrency_width=1, window_size=5)
        rival_attempts: list[bool] = []

        def behavior(key: str, attempt: int):
            if key == "people/c5":
                rival_attempts.append(RunLease(kv_store, name="sync", ttl_seconds=330).acquire())
            return None

        sink = FakeSink(behavior=behavior, clock=clock, request_seconds=100.0)
        driver = build_driver(
            FakeSource(make_records(5)),
            sink,
            settings,
            lease=RunLease(kv_store, name="sync", ttl_seconds=330),
        )

        summary = driver.run_once()

        assert summary.elapsed_seconds == 500.0
        assert rival_attempts == [False]
        assert summary.created == 5
        assert summary.lease_lost is False

    def test_lost_lease_stops_dispatch(self, build_driver, fast_settings, kv_store, clock) -> None:
        settings = replace(fast_settings, concurrency_width=1, window_size=5)
        rival = RunLease(kv_store, name="sync", ttl_seconds=330)

        def behavior(key: str, attempt: int):
            if key == "people/c1":
                rival.acquire()
            return None

        sink = FakeSink(behavior=behavior, clock=clock, request_seconds=400.0)
        driver = build_driver(
            FakeSource(make_records(5)),
            sink,
            settings,
            lease=RunLease(kv_store, name="sync", ttl_seconds=330),
        )

        summary = driver.run_once()

        assert summary.lease_lost is True
        assert summary.created == 1
        assert sink.calls == ["people/c1"]
        assert RunLease(kv_store, name="sync", ttl_seconds=330).acquire() is False

    def test_unreachable_lease_store_skips_run(self, build_driver, fast_settings) -> None:
        source = FakeSource(make_records(2))
        driver = build_driver(
            source,
            FakeSink(),
            fast_settings,
            lease=RunLease(UnreachableStore(), name="sync", ttl_seconds=300),
        )

        summary = driver.run_once()

        assert summary.skipped is True
        assert source.list_calls == 0


@pytest.fixture()
def clean_settings_cache():
    getters = (
        config.get_google_contacts_settings,
        config.get_notion_settings,
        config.get_checkpoint_settings,
        config.get_sync_settings,
        config.get_external_http_settings,
    )
    for getter in getters:
        getter.cache_clear()
    yield
    for getter in getters:
        getter.cache_clear()


class TestConfiguration:
    def test_missing_notion_settings_fail_before_io(self, monkeypatch, clean_settings_cache) -> None:
        monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "token")
        monkeypatch.delenv("NOTION_API_KEY", raising=False)
        monkeypatch.setenv("NOTION_DATABASE_ID", "")

        with pytest.raises(SyncConfigurationError, match="NOTION_API_KEY"):
            build_sync_driver(InMemoryKeyValueStore())

    def test_missing_google_credentials_fail(self, monkeypatch, clean_settings_cache) -> None:
        for name in ("GOOGLE_ACCESS_TOKEN", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REFRESH_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("NOTION_API_KEY", "secret_x")
        monkeypatch.setenv("NOTION_DATABASE_ID", "db")

        with pytest.raises(SyncConfigurationError, match="Google credentials"):
            build_sync_driver(InMemoryKeyValueStore())

    def test_complete_settings_build_driver(self, monkeypatch, clean_settings_cache) -> None:
        monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "token")
        monkeypatch.setenv("NOTION_API_KEY", "secret_x")
        monkeypatch.setenv("NOTION_DATABASE_ID", "db")
        monkeypatch.setenv("SYNC_CHECKPOINT_BACKEND", "memory")

        driver = build_sync_driver(InMemoryKeyValueStore())

        assert isinstance(driver, SyncDriver)
