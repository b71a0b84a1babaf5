"""
tests/conftest.py

Shared fakes for the sync engine tests: in-memory source and sink, a manual
clock, and a stub ``requests`` session.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

import pytest
import requests

from contact_sync.config import SyncSettings
from contact_sync.domain.identity import IdentitySet
from contact_sync.domain.sync import CreateFailure, CreateResult, CreateSuccess, SourceRecord
from contact_sync.errors import CheckpointStoreError, SinkTransportError
from contact_sync.mappers.contact_mapper import NotionContactMapper
from contact_sync.repositories.checkpoint_store import CheckpointStore
from contact_sync.repositories.kv_store import InMemoryKeyValueStore
from contact_sync.services.sync_driver import SyncDriver

IDENTITY_PROPERTY = "Google Contact ID"


def make_record(index: int, *, name: str | None = "default") -> SourceRecord:
    display_name = f"Contact {index}" if name == "default" else name
    return SourceRecord(
        identity_key=f"people/c{index}",
        display_name=display_name,
        attributes={"resourceName": f"people/c{index}"},
    )


def make_records(count: int) -> list[SourceRecord]:
    return [make_record(index) for index in range(1, count + 1)]


def identity_of(properties: dict[str, Any]) -> str:
    return properties[IDENTITY_PROPERTY]["rich_text"][0]["text"]["content"]


class ManualClock:
    """Monotonic clock advanced only by ``sleep`` and ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class UnreachableStore:
    def get(self, key: str) -> str | None:
        raise CheckpointStoreError("store offline")

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        raise CheckpointStoreError("store offline")

    def delete(self, key: str) -> None:
        raise CheckpointStoreError("store offline")

    def add(self, key: str, value: str, ttl_seconds: int) -> bool:
        raise CheckpointStoreError("store offline")


class FakeSource:
    def __init__(self, records: list[SourceRecord]) -> None:
        self.records = list(records)
        self.list_calls = 0

    def list_records(self) -> list[SourceRecord]:
        self.list_calls += 1
        return list(self.records)


Behavior = Callable[[str, int], "CreateResult | Exception | None"]


class FakeSink:
    """
    In-memory sink. ``behavior(identity_key, attempt)`` may return a
    CreateResult or an exception to raise; None means succeed.
    """

    def __init__(
        self,
        existing: list[str] | None = None,
        *,
        behavior: Behavior | None = None,
        clock: ManualClock | None = None,
        request_seconds: float = 0.0,
    ) -> None:
        self.pages: dict[str, str] = {key: f"page-{key}" for key in existing or []}
        self.created: list[str] = []
        self.calls: list[str] = []
        self.query_calls = 0
        self._behavior = behavior
        self._clock = clock
        self._request_seconds = request_seconds
        self._lock = threading.Lock()

    def query_identity_keys(self) -> IdentitySet:
        self.query_calls += 1
        with self._lock:
            return IdentitySet.from_handles(dict(self.pages))

    def create_record(self, properties: dict[str, Any]) -> CreateResult:
        key = identity_of(properties)
        with self._lock:
            self.calls.append(key)
            attempt = self.calls.count(key)
        if self._clock is not None and self._request_seconds:
            self._clock.advance(self._request_seconds)
        outcome = self._behavior(key, attempt) if self._behavior else None
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, CreateFailure):
            return outcome
        handle = f"page-{key}-{attempt}"
        with self._lock:
            self.pages[key] = handle
            self.created.append(key)
        return CreateSuccess(handle=handle)


def rate_limited() -> CreateFailure:
    return CreateFailure(code="rate_limited", message="Rate limited", status_code=429)


def transport_error() -> SinkTransportError:
    return SinkTransportError("notion: ConnectionError: connection refused")


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        text: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))
        self.headers = headers or {}

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class StubSession:
    """
    Stand-in for requests.Session. Each queued item is a FakeResponse or an
    exception to raise.
    """

    def __init__(self, responses: list[Any] | None = None, *, post_responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.post_responses = list(post_responses or [])
        self.requests: list[dict[str, Any]] = []
        self.posts: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posts.append({"url": url, **kwargs})
        item = self.post_responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def kv_store(clock: ManualClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture()
def fast_settings() -> SyncSettings:
    return SyncSettings(
        concurrency_width=5,
        group_pause_seconds=0.0,
        max_attempts=3,
        retry_base_delay_seconds=0.0,
        fallback_record_delay_seconds=0.0,
        window_size=5,
        execution_budget_seconds=270.0,
    )


@pytest.fixture()
def build_driver(kv_store: InMemoryKeyValueStore, clock: ManualClock) -> Callable[..., SyncDriver]:
    def _build(
        source: FakeSource,
        sink: FakeSink,
        settings: SyncSettings,
        **kwargs: Any,
    ) -> SyncDriver:
        return SyncDriver(
            source=source,
            sink=sink,
            mapper=NotionContactMapper(),
            checkpoint=CheckpointStore(kv_store, namespace="synced", page_size=4),
            dead_letters=CheckpointStore(kv_store, namespace="dead", page_size=4),
            settings=settings,
            clock=clock,
            sleep=clock.sleep,
            **kwargs,
        )

    return _build
