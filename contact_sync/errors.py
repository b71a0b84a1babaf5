"""
contact_sync/errors.py

Exception hierarchy shared by connectors, checkpoint storage and the sync engine.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for contact sync failures."""


class SyncConfigurationError(SyncError, RuntimeError):
    """Raised when a credential or target identifier is missing. Always fatal."""


class ConnectorRequestError(SyncError, RuntimeError):
    """
    Raised when a connector cannot fetch data after retries.
    """


class SinkTransportError(SyncError):
    """
    Raised when a single sink request fails below the HTTP status level
    (timeout, refused connection, unreadable response).
    """


class CheckpointStoreError(SyncError):
    """Raised by key-value store implementations when the backing store fails."""


class RecordMappingError(SyncError, ValueError):
    """
    Raised by the field mapper when a source record cannot be represented
    in the sink (for example, no usable display name).
    """


class SinkRejectionError(SyncConfigurationError):
    """
    Raised when the sink rejects a whole window of records with one
    non-retryable code, which points at the target database (renamed or
    missing property) rather than at the records.
    """

    def __init__(self, code: str, count: int) -> None:
        self.code = code
        self.count = count
        super().__init__(
            f"Sink rejected all {count} records of a window with code={code}; "
            "check the target database schema. Nothing was dead-lettered."
        )
