"""
contact_sync/repositories package exports.
"""

from contact_sync.repositories.checkpoint_store import CheckpointStore
from contact_sync.repositories.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
)
from contact_sync.repositories.lease import RunLease

__all__ = [
    "CheckpointStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RunLease",
    "SqlKeyValueStore",
]
