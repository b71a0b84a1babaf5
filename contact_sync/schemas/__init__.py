"""
contact_sync/schemas package exports.
"""

from contact_sync.schemas.sync import AutoSyncResponse, RunSummaryResponse, SyncStatusResponse

__all__ = [
    "AutoSyncResponse",
    "RunSummaryResponse",
    "SyncStatusResponse",
]
