"""
contact_sync/domain/sync.py

Domain models passed between connectors, dispatcher, retry coordinator and driver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class SourceRecord:
    """
    One record from the source directory.

    ``attributes`` is the provider payload, read only by the field mapper.
    """

    identity_key: str
    display_name: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def label(self) -> str:
        """Human-readable identity for diagnostics."""
        if self.display_name:
            return f"{self.display_name} ({self.identity_key})"
        return self.identity_key


@dataclass(frozen=True)
class CreateSuccess:
    handle: str


@dataclass(frozen=True)
class CreateFailure:
    code: str
    message: str
    status_code: int | None = None


CreateResult = Union[CreateSuccess, CreateFailure]


@dataclass
class BatchResult:
    """
    Outcome of one dispatch call.

    ``created_keys`` maps identity key -> sink handle in creation order.
    ``permanently_failed`` holds records whose failure will not go away on
    retry (dead letters); ``retryable_failed`` holds everything else.
    ``rejection_codes`` maps a permanently failed key to the sink error code
    (mapping failures have none). ``halted`` is set when dispatch stopped
    early because the run lease was lost; unsent records are retryable.
    """

    created_keys: dict[str, str] = field(default_factory=dict)
    retryable_failed: list[SourceRecord] = field(default_factory=list)
    permanently_failed: list[SourceRecord] = field(default_factory=list)
    rejection_codes: dict[str, str] = field(default_factory=dict)
    halted: bool = False

    @property
    def created(self) -> int:
        return len(self.created_keys)

    def merge(self, other: "BatchResult") -> None:
        self.created_keys.update(other.created_keys)
        self.retryable_failed.extend(other.retryable_failed)
        self.permanently_failed.extend(other.permanently_failed)
        self.rejection_codes.update(other.rejection_codes)
        self.halted = self.halted or other.halted


@dataclass
class RetryOutcome:
    """
    Outcome of one retry-coordinated run over a slice of pending records.

    ``permanently_failed`` holds records still failing after the retry
    ceiling; they stay pending and are attempted again next run.
    """

    created_keys: dict[str, str] = field(default_factory=dict)
    permanently_failed: list[SourceRecord] = field(default_factory=list)
    dead_lettered: list[SourceRecord] = field(default_factory=list)
    rejection_codes: dict[str, str] = field(default_factory=dict)
    halted: bool = False

    @property
    def created(self) -> int:
        return len(self.created_keys)


@dataclass(frozen=True)
class RunSummary:
    """
    Outcome of one driver run.

    ``dead_lettered`` counts records dead-lettered during this run;
    ``excluded`` counts every source record currently in the dead-letter log.
    """

    created: int
    failed: int
    dead_lettered: int
    elapsed_seconds: float
    total: int
    synced: int
    excluded: int = 0
    timed_out: bool = False
    skipped: bool = False
    lease_lost: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.synced - self.excluded)


@dataclass(frozen=True)
class SyncStatus:
    total: int
    synced: int
    dead_lettered: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.synced - self.dead_lettered)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(100.0 * (self.total - self.remaining) / self.total, 1)
