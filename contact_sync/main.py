from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    if not os.getenv("NOTION_API_KEY", "").strip():
        errors.append("NOTION_API_KEY is not set.")
    if not os.getenv("NOTION_DATABASE_ID", "").strip():
        errors.append("NOTION_DATABASE_ID is not set. Run scripts/create_notion_database.py first.")

    has_static_token = bool(os.getenv("GOOGLE_ACCESS_TOKEN", "").strip())
    has_refresh = all(
        os.getenv(name, "").strip()
        for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REFRESH_TOKEN")
    )
    if not has_static_token and not has_refresh:
        errors.append(
            "Google credentials are not set. Provide GOOGLE_ACCESS_TOKEN or "
            "GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN."
        )

    backend = os.getenv("SYNC_CHECKPOINT_BACKEND", "sql").strip().lower()
    if backend == "sql" and not (
        os.getenv("SYNC_DATABASE_URL", "").strip() or os.getenv("DATABASE_URL", "").strip()
    ):
        errors.append(
            "No checkpoint database configured. Set SYNC_DATABASE_URL or DATABASE_URL, "
            "or set SYNC_CHECKPOINT_BACKEND=memory."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_schema() -> None:
    """
    Abort startup when the checkpoint table has not been migrated.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    missing = set(Base.metadata.tables.keys()) - set(inspector.get_table_names())
    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch: table(s) %s absent from the database. Run 'alembic upgrade head' and restart.",
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate storage, start the callback scheduler on boot; shut it down on exit."""
    from contact_sync.config import get_checkpoint_settings, get_scheduler_settings
    from contact_sync.scheduler.jobs import get_callback_service, get_sync_scheduler

    log = logging.getLogger(__name__)
    if get_checkpoint_settings().backend == "sql":
        _check_schema()
        log.info("Checkpoint schema validated")

    callbacks = get_callback_service()
    callbacks.start()
    log.info("Callback scheduler started")
    if get_scheduler_settings().auto_start:
        get_sync_scheduler().start_auto_sync()
    try:
        yield
    finally:
        callbacks.shutdown(wait=True)
        log.info("Callback scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Contact Sync API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from contact_sync.api.routers import sync_router

    application.include_router(sync_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        from contact_sync.scheduler.jobs import get_sync_scheduler

        return {"status": "ok", "auto_sync_mode": get_sync_scheduler().mode}

    return application


app = create_app()
