"""
contact_sync/repositories/lease.py

Named run lease so two sync runs never write to the same sink concurrently.
"""

from __future__ import annotations

import logging
import uuid

from contact_sync.repositories.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class RunLease:
    """
    TTL'd lease record in the key-value store.

    The TTL bounds how long a crashed holder can block later runs; a live
    holder keeps the lease by calling ``renew`` well inside the TTL.
    """

    def __init__(self, store: KeyValueStore, *, name: str, ttl_seconds: int) -> None:
        self._store = store
        self._key = f"lease:{name}"
        self._ttl_seconds = ttl_seconds
        self._token: str | None = None

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def acquire(self) -> bool:
        """
        Take the lease. An unreachable store counts as not acquired.
        """

        token = uuid.uuid4().hex
        try:
            acquired = self._store.add(self._key, token, self._ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Lease acquire failed key=%s error=%s; treating as held elsewhere", self._key, exc)
            return False
        if not acquired:
            return False
        self._token = token
        return True

    def renew(self) -> bool:
        """
        Push the expiry out by a full TTL while this holder still owns the lease.

        Returns False once another holder has taken the lease over. A store
        failure is logged and reported as still held; the existing expiry
        stands.
        """

        if self._token is None:
            return False
        try:
            if self._store.get(self._key) != self._token:
                logger.warning("Lease lost key=%s; another run holds it", self._key)
                self._token = None
                return False
            self._store.put(self._key, self._token, self._ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Lease renewal failed key=%s error=%s", self._key, exc)
        return True

    def release(self) -> None:
        if self._token is None:
            return
        try:
            if self._store.get(self._key) == self._token:
                self._store.delete(self._key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Lease release failed key=%s error=%s; it will expire", self._key, exc)
        finally:
            self._token = None
