"""
contact_sync/api/routers/sync_router.py

Operator-facing sync control endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from contact_sync.errors import ConnectorRequestError, SyncConfigurationError
from contact_sync.scheduler.jobs import SyncScheduler, get_sync_scheduler
from contact_sync.schemas.sync import AutoSyncResponse, RunSummaryResponse, SyncStatusResponse
from contact_sync.services.sync_driver import SyncDriver
from contact_sync.services.sync_service import get_sync_driver

router = APIRouter(prefix="/sync", tags=["sync"])


def get_driver() -> SyncDriver:
    """
    Resolve the sync driver; configuration errors become 503 responses.
    """

    try:
        return get_sync_driver()
    except SyncConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.post("/run", response_model=RunSummaryResponse)
def run_once(
    force_refresh: bool = Query(default=False, description="Discard the checkpoint before running"),
    reset_dead_letters: bool = Query(default=False, description="Empty the dead-letter log before running"),
    driver: SyncDriver = Depends(get_driver),
) -> RunSummaryResponse:
    """
    Run one time-boxed sync pass.
    """

    try:
        summary = driver.run_once(force_refresh=force_refresh, reset_dead_letters=reset_dead_letters)
    except SyncConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except ConnectorRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    return RunSummaryResponse.from_summary(summary)


@router.get("/status", response_model=SyncStatusResponse)
def check_status(
    live: bool = Query(default=False, description="Query the sink instead of trusting the checkpoint"),
    driver: SyncDriver = Depends(get_driver),
) -> SyncStatusResponse:
    try:
        sync_status = driver.check_status(live=live)
    except ConnectorRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    return SyncStatusResponse.from_status(sync_status)


@router.post("/auto/start", response_model=AutoSyncResponse)
def start_auto_sync(
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> AutoSyncResponse:
    return AutoSyncResponse(mode=scheduler.start_auto_sync())


@router.post("/auto/stop", response_model=AutoSyncResponse)
def stop_auto_sync(
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> AutoSyncResponse:
    return AutoSyncResponse(mode=scheduler.stop_auto_sync())
