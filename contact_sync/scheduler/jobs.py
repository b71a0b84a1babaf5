"""
contact_sync/scheduler/jobs.py

Self-scheduling control loop for the contact sync.

Modes
-----
  catch_up     short interval, active while a backlog is believed to exist.
  maintenance  long interval, active once a live sink query confirmed the
                 backlog is empty. Every maintenance run discards the
                 checkpoint first.

The two modes are mutually exclusive: switching cancels the other mode's
callback before registering the new one. A maintenance run that runs out of
budget with backlog left promotes the loop back to catch-up.

Exceptions raised inside a scheduled run are logged here and never
propagated to the host scheduler.
"""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from contact_sync.config import SchedulerSettings, get_scheduler_settings
from contact_sync.services.sync_driver import SyncDriver

logger = logging.getLogger(__name__)

Handler = Callable[[], None]


class CallbackScheduler(Protocol):
    def schedule(self, handler: Handler, interval_seconds: int) -> str: ...

    def cancel(self, handler: Handler) -> None: ...


class APSchedulerCallbackService:
    """
    Deferred-callback service over an APScheduler scheduler.

    One job per handler; ``max_instances=1`` keeps a handler single-flight.
    """

    def __init__(self, scheduler: BaseScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    @property
    def scheduler(self) -> BaseScheduler:
        return self._scheduler

    @staticmethod
    def job_id(handler: Handler) -> str:
        return f"{handler.__module__}.{handler.__qualname__}"

    def schedule(self, handler: Handler, interval_seconds: int) -> str:
        job = self._scheduler.add_job(
            handler,
            trigger="interval",
            seconds=interval_seconds,
            id=self.job_id(handler),
            name=handler.__qualname__,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=interval_seconds,
        )
        return job.id

    def cancel(self, handler: Handler) -> None:
        try:
            self._scheduler.remove_job(self.job_id(handler))
        except JobLookupError:
            pass

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)


class SyncMode:
    STOPPED = "stopped"
    CATCH_UP = "catch_up"
    MAINTENANCE = "maintenance"


class SyncScheduler:
    def __init__(
        self,
        *,
        driver_factory: Callable[[], SyncDriver],
        callbacks: CallbackScheduler,
        settings: SchedulerSettings,
    ) -> None:
        self._driver_factory = driver_factory
        self._callbacks = callbacks
        self._settings = settings
        self._mode = SyncMode.STOPPED
        self._lock = threading.Lock()

    @property
    def mode(self) -> str:
        return self._mode

    def start_auto_sync(self) -> str:
        self._switch_to(SyncMode.CATCH_UP)
        return self._mode

    def stop_auto_sync(self) -> str:
        self._switch_to(SyncMode.STOPPED)
        return self._mode

    def run_catch_up(self) -> None:
        """Scheduled catch-up invocation."""
        try:
            driver = self._driver_factory()
            summary = driver.run_once()
            if summary.skipped:
                return
            if summary.timed_out or summary.lease_lost or summary.remaining > 0:
                logger.info(
                    "Catch-up continuing remaining=%s timed_out=%s lease_lost=%s",
                    summary.remaining,
                    summary.timed_out,
                    summary.lease_lost,
                )
                return

            status = driver.check_status(live=True)
            if status.remaining == 0:
                logger.info("Backlog confirmed empty against sink total=%s; switching to maintenance", status.total)
                self._switch_to(SyncMode.MAINTENANCE)
            else:
                logger.info("Live check found backlog remaining=%s; staying in catch-up", status.remaining)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Scheduled catch-up run aborted: %s", exc, exc_info=True)

    def run_maintenance(self) -> None:
        """Scheduled maintenance invocation."""
        try:
            summary = self._driver_factory().run_once(force_refresh=True)
            if not summary.skipped and summary.timed_out and summary.remaining > 0:
                logger.info("Maintenance run left backlog remaining=%s; switching to catch-up", summary.remaining)
                self._switch_to(SyncMode.CATCH_UP)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Scheduled maintenance run aborted: %s", exc, exc_info=True)

    def _switch_to(self, mode: str) -> None:
        with self._lock:
            self._callbacks.cancel(self.run_catch_up)
            self._callbacks.cancel(self.run_maintenance)
            if mode == SyncMode.CATCH_UP:
                self._callbacks.schedule(self.run_catch_up, self._settings.catch_up_interval_seconds)
            elif mode == SyncMode.MAINTENANCE:
                self._callbacks.schedule(self.run_maintenance, self._settings.maintenance_interval_seconds)
            previous, self._mode = self._mode, mode
        logger.info("Auto-sync mode changed from=%s to=%s", previous, mode)


@lru_cache(maxsize=1)
def get_callback_service() -> APSchedulerCallbackService:
    """
    Shared APScheduler-backed callback service; started by the app lifespan.
    """

    return APSchedulerCallbackService()


@lru_cache(maxsize=1)
def get_sync_scheduler() -> SyncScheduler:
    from contact_sync.services.sync_service import get_sync_driver

    return SyncScheduler(
        driver_factory=get_sync_driver,
        callbacks=get_callback_service(),
        settings=get_scheduler_settings(),
    )
