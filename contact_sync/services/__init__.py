"""
contact_sync/services package exports.
"""

from contact_sync.services.dispatcher import BatchDispatcher, GroupTransportError
from contact_sync.services.retry_coordinator import RetryCoordinator
from contact_sync.services.sync_driver import SyncDriver, compute_pending

__all__ = [
    "BatchDispatcher",
    "GroupTransportError",
    "RetryCoordinator",
    "SyncDriver",
    "compute_pending",
]
