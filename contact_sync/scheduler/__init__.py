"""
contact_sync/scheduler package exports.
"""

from contact_sync.scheduler.jobs import (
    APSchedulerCallbackService,
    CallbackScheduler,
    SyncMode,
    SyncScheduler,
    get_sync_scheduler,
)

__all__ = [
    "APSchedulerCallbackService",
    "CallbackScheduler",
    "SyncMode",
    "SyncScheduler",
    "get_sync_scheduler",
]
