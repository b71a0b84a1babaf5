"""
contact_sync/repositories/kv_store.py

Expiring key-value stores used for checkpoints, dead letters and run leases.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from contact_sync.errors import CheckpointStoreError
from db.models.kv_entry import KeyValueEntry


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def add(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` only if ``key`` is absent or expired; report whether it was stored."""
        ...


class InMemoryKeyValueStore:
    """
    Process-local store. Suitable for tests and single-process deployments.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def add(self, key: str, value: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[1] > self._clock():
                return False
            self._entries[key] = (value, self._clock() + ttl_seconds)
            return True


class SqlKeyValueStore:
    """
    Store backed by the ``sync_kv_entries`` table.

    Every call runs in its own short transaction. Database failures surface
    as CheckpointStoreError.
    """

    def __init__(self, session_factory: sessionmaker | Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _is_live(entry: KeyValueEntry, now: datetime) -> bool:
        expires_at = entry.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at > now

    def get(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None or not self._is_live(entry, self._now()):
                    return None
                return entry.value
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(f"Failed to read key '{key}'.") from exc

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = self._now() + timedelta(seconds=ttl_seconds)
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value, expires_at=expires_at))
                else:
                    entry.value = value
                    entry.expires_at = expires_at
                session.commit()
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(f"Failed to write key '{key}'.") from exc

    def delete(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
                session.commit()
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(f"Failed to delete key '{key}'.") from exc

    def add(self, key: str, value: str, ttl_seconds: int) -> bool:
        now = self._now()
        expires_at = now + timedelta(seconds=ttl_seconds)
        try:
            with self._session_factory() as session:
                entry = session.scalars(
                    select(KeyValueEntry).where(KeyValueEntry.key == key).with_for_update()
                ).first()
                if entry is not None:
                    if self._is_live(entry, now):
                        return False
                    entry.value = value
                    entry.expires_at = expires_at
                else:
                    session.add(KeyValueEntry(key=key, value=value, expires_at=expires_at))
                try:
                    session.commit()
                except IntegrityError:
                    # Another process inserted the key between our read and commit.
                    session.rollback()
                    return False
                return True
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(f"Failed to add key '{key}'.") from exc
