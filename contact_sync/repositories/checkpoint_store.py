"""
contact_sync/repositories/checkpoint_store.py

Paged checkpoint of identity keys over an expiring key-value store.

Layout for namespace ``ns``:

  ns:manifest   {"count": <total keys>, "page_size": <keys per page>}
  ns:page:0..N  JSON arrays of identity keys

Pages are written before the manifest, so a reader never sees a count whose
pages have not been written yet. Every entry is rewritten on append so all
entries share one expiry.

The checkpoint is a cache, never the source of truth: any read failure makes
``load`` return an empty set, which sends the driver back to a live sink query.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Sequence

from contact_sync.domain.identity import IdentitySet
from contact_sync.errors import CheckpointStoreError
from contact_sync.repositories.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class _CheckpointUnreadable(Exception):
    pass


class CheckpointStore:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        namespace: str,
        page_size: int = 500,
        ttl_seconds: int = 6 * 60 * 60,
        max_entry_bytes: int = 100_000,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._page_size = max(1, page_size)
        self._ttl_seconds = ttl_seconds
        self._max_entry_bytes = max_entry_bytes

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def _manifest_key(self) -> str:
        return f"{self._namespace}:manifest"

    def _page_key(self, index: int) -> str:
        return f"{self._namespace}:page:{index}"

    def load(self) -> IdentitySet:
        """
        Return the checkpointed identity set, or an empty set when the
        checkpoint is absent, expired, incomplete or the store is unreachable.
        """

        try:
            keys = self._read()
        except _CheckpointUnreadable as exc:
            logger.warning("Checkpoint unreadable namespace=%s reason=%s", self._namespace, exc)
            return IdentitySet()
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Checkpoint store unavailable namespace=%s error=%s; falling back to empty set",
                self._namespace,
                exc,
            )
            return IdentitySet()
        return IdentitySet(keys or ())

    def append(
        self,
        keys: Sequence[str],
        *,
        baseline: IdentitySet | None = None,
    ) -> int:
        """
        Add ``keys`` to the checkpoint and rewrite it. Returns the number of
        keys that were not already checkpointed.

        ``baseline`` is written together with ``keys`` when no checkpoint
        exists, so an expired checkpoint is never replaced by a partial one.
        A write failure is logged per key as a duplicate risk and never raised.
        """

        if not keys:
            return 0

        try:
            existing = self._read()
        except _CheckpointUnreadable as exc:
            # A partial rewrite would hide records from the next run; drop the
            # checkpoint so the next run re-derives state from the sink.
            logger.warning(
                "Checkpoint unreadable during append namespace=%s reason=%s; clearing",
                self._namespace,
                exc,
            )
            self.clear()
            return 0
        except Exception as exc:  # noqa: BLE001
            self._log_duplicate_risk(keys, exc)
            return 0

        merged = IdentitySet(existing or ())
        if existing is None and baseline is not None:
            merged.merge(baseline)
        before = len(merged)
        merged.merge(keys)
        added = len(merged) - before
        if added == 0 and existing is not None:
            return 0

        try:
            self._write(merged.keys())
        except Exception as exc:  # noqa: BLE001
            self._log_duplicate_risk(keys, exc)
            return 0

        logger.info(
            "Checkpoint appended namespace=%s added=%s total=%s",
            self._namespace,
            added,
            len(merged),
        )
        return added

    def clear(self) -> None:
        """
        Delete the manifest and every page. Store failures are logged.
        """

        try:
            page_count, _ = self._read_manifest_layout()
            self._store.delete(self._manifest_key)
            for index in range(page_count):
                self._store.delete(self._page_key(index))
        except _CheckpointUnreadable:
            self._store_delete_quietly(self._manifest_key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Checkpoint clear failed namespace=%s error=%s", self._namespace, exc)
            return
        logger.info("Checkpoint cleared namespace=%s", self._namespace)

    def _store_delete_quietly(self, key: str) -> None:
        try:
            self._store.delete(key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Checkpoint delete failed key=%s error=%s", key, exc)

    def _read_manifest_layout(self) -> tuple[int, int]:
        """
        Return (page_count, key_count) for the stored checkpoint, (0, 0) if absent.
        """

        raw = self._store.get(self._manifest_key)
        if raw is None:
            return 0, 0
        try:
            manifest = json.loads(raw)
            count = int(manifest["count"])
            page_size = int(manifest.get("page_size", self._page_size))
        except (ValueError, TypeError, KeyError) as exc:
            raise _CheckpointUnreadable(f"bad manifest: {exc}") from exc
        if count <= 0 or page_size <= 0:
            return 0, 0
        return math.ceil(count / page_size), count

    def _read(self) -> list[str] | None:
        page_count, count = self._read_manifest_layout()
        if count == 0:
            return None

        keys: list[str] = []
        for index in range(page_count):
            raw_page = self._store.get(self._page_key(index))
            if raw_page is None:
                raise _CheckpointUnreadable(f"page {index} of {page_count} is missing")
            try:
                page = json.loads(raw_page)
            except ValueError as exc:
                raise _CheckpointUnreadable(f"page {index} is not valid JSON") from exc
            if not isinstance(page, list) or not all(isinstance(key, str) for key in page):
                raise _CheckpointUnreadable(f"page {index} is not a list of keys")
            keys.extend(page)

        if len(keys) != count:
            raise _CheckpointUnreadable(f"manifest count {count} != stored keys {len(keys)}")
        return keys

    def _write(self, keys: list[str]) -> None:
        pages = [
            json.dumps(keys[start : start + self._page_size], separators=(",", ":"))
            for start in range(0, len(keys), self._page_size)
        ]
        for index, page in enumerate(pages):
            if len(page.encode("utf-8")) > self._max_entry_bytes:
                raise CheckpointStoreError(
                    f"Checkpoint page {index} exceeds {self._max_entry_bytes} bytes; "
                    "lower the checkpoint page size."
                )
        for index, page in enumerate(pages):
            self._store.put(self._page_key(index), page, self._ttl_seconds)
        manifest = json.dumps({"count": len(keys), "page_size": self._page_size})
        self._store.put(self._manifest_key, manifest, self._ttl_seconds)

    def _log_duplicate_risk(self, keys: Sequence[str], exc: Exception) -> None:
        logger.error(
            "Checkpoint append failed namespace=%s keys=%s error=%s",
            self._namespace,
            len(keys),
            exc,
        )
        for key in keys:
            logger.warning(
                "Duplicate risk: key=%s not persisted namespace=%s; a later run may resubmit it",
                key,
                self._namespace,
            )
