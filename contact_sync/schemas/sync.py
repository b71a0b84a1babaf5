"""
contact_sync/schemas/sync.py

Response schemas for the sync control surface.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from contact_sync.domain.sync import RunSummary, SyncStatus


class RunSummaryResponse(BaseModel):
    """
    API response model for one sync run.
    """

    created: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    dead_lettered: int = Field(..., ge=0)
    elapsed_seconds: float = Field(..., ge=0)
    total: int = Field(..., ge=0)
    synced: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    timed_out: bool
    skipped: bool
    lease_lost: bool

    @classmethod
    def from_summary(cls, summary: RunSummary) -> "RunSummaryResponse":
        return cls(
            created=summary.created,
            failed=summary.failed,
            dead_lettered=summary.dead_lettered,
            elapsed_seconds=round(summary.elapsed_seconds, 3),
            total=summary.total,
            synced=summary.synced,
            remaining=summary.remaining,
            timed_out=summary.timed_out,
            skipped=summary.skipped,
            lease_lost=summary.lease_lost,
        )


class SyncStatusResponse(BaseModel):
    total: int = Field(..., ge=0)
    synced: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    dead_lettered: int = Field(..., ge=0)
    percent: float = Field(..., ge=0, le=100)

    @classmethod
    def from_status(cls, status: SyncStatus) -> "SyncStatusResponse":
        return cls(
            total=status.total,
            synced=status.synced,
            remaining=status.remaining,
            dead_lettered=status.dead_lettered,
            percent=status.percent,
        )


class AutoSyncResponse(BaseModel):
    mode: str
