"""
contact_sync/domain package exports.
"""

from contact_sync.domain.identity import IdentitySet
from contact_sync.domain.sync import (
    BatchResult,
    CreateFailure,
    CreateResult,
    CreateSuccess,
    RetryOutcome,
    RunSummary,
    SourceRecord,
    SyncStatus,
)

__all__ = [
    "BatchResult",
    "CreateFailure",
    "CreateResult",
    "CreateSuccess",
    "IdentitySet",
    "RetryOutcome",
    "RunSummary",
    "SourceRecord",
    "SyncStatus",
]
