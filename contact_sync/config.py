"""
contact_sync/config.py

Environment-driven settings for connectors, checkpointing, the sync engine
and the scheduler.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from contact_sync.errors import SyncConfigurationError
from db.config import load_env_files

_ALLOWED_CHECKPOINT_BACKENDS = {"sql", "memory"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for the source and sink connectors.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 3.0


@dataclass(frozen=True)
class GoogleContactsSettings:
    """
    Google People API connector settings.

    Either a static ``access_token`` or the ``client_id`` / ``client_secret`` /
    ``refresh_token`` triple must be present.
    """

    access_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    refresh_token: str | None = None
    token_url: str = "https://oauth2.googleapis.com/token"
    base_url: str = "https://people.googleapis.com/v1"
    page_size: int = 1000
    person_fields: str = (
        "names,emailAddresses,phoneNumbers,organizations,birthdays,addresses,metadata"
    )

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def validate(self) -> None:
        if not self.access_token and not self.can_refresh:
            raise SyncConfigurationError(
                "Google credentials are missing. Set GOOGLE_ACCESS_TOKEN, or "
                "GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN."
            )


@dataclass(frozen=True)
class NotionSettings:
    """
    Notion sink connector settings.
    """

    api_key: str | None = None
    database_id: str | None = None
    base_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    identity_property: str = "Google Contact ID"
    title_property: str = "Name"
    page_size: int = 100

    def validate(self) -> None:
        missing: list[str] = []
        if not self.api_key:
            missing.append("NOTION_API_KEY")
        if not self.database_id:
            missing.append("NOTION_DATABASE_ID")
        if missing:
            raise SyncConfigurationError(
                f"Notion configuration is missing: {', '.join(missing)}."
            )


@dataclass(frozen=True)
class SyncSettings:
    """
    Tuning knobs for one sync run.

    concurrency_width: create requests in flight per dispatch group.
    group_pause_seconds: fixed pause between groups, sized to the sink's
        published request-rate ceiling (Notion averages three requests/second).
    max_attempts: dispatches per record per run, first attempt included.
    retry_base_delay_seconds: retry n waits ``n * retry_base_delay_seconds``.
    fallback_record_delay_seconds: pause between records when a group is
        resubmitted one at a time after a group-level transport fault.
    window_size: records handed to the retry coordinator between budget checks.
    execution_budget_seconds: wall-clock budget for one run.
    rejection_abort_threshold: a window of at least this many records that
        the sink rejects entirely with one non-retryable code aborts the run
        instead of dead-lettering them; 0 disables the check.
    """

    concurrency_width: int = 5
    group_pause_seconds: float = 1.0
    max_attempts: int = 3
    retry_base_delay_seconds: float = 2.0
    fallback_record_delay_seconds: float = 0.5
    window_size: int = 25
    execution_budget_seconds: float = 270.0
    rejection_abort_threshold: int = 5


@dataclass(frozen=True)
class CheckpointSettings:
    """
    Checkpoint, dead-letter and lease storage settings.
    """

    backend: str = "sql"
    namespace: str = "synced_contacts"
    page_size: int = 500
    ttl_seconds: int = 6 * 60 * 60
    max_entry_bytes: int = 100_000
    dead_letter_namespace: str = "dead_letter_contacts"
    dead_letter_ttl_seconds: int = 30 * 24 * 60 * 60
    lease_name: str = "contact_sync_run"
    lease_ttl_seconds: int = 330


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Auto-sync cadence settings.
    """

    catch_up_interval_seconds: int = 600
    maintenance_interval_seconds: int = 3600
    auto_start: bool = False


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 3.0)),
    )


@lru_cache(maxsize=1)
def get_google_contacts_settings() -> GoogleContactsSettings:
    """
    Return Google People API settings from environment variables.
    """

    return GoogleContactsSettings(
        access_token=_get_optional_str_env("GOOGLE_ACCESS_TOKEN"),
        client_id=_get_optional_str_env("GOOGLE_CLIENT_ID"),
        client_secret=_get_optional_str_env("GOOGLE_CLIENT_SECRET"),
        refresh_token=_get_optional_str_env("GOOGLE_REFRESH_TOKEN"),
        token_url=_get_str_env("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token"),
        base_url=_get_str_env("GOOGLE_PEOPLE_BASE_URL", "https://people.googleapis.com/v1"),
        page_size=min(1000, max(1, _get_int_env("GOOGLE_PEOPLE_PAGE_SIZE", 1000))),
        person_fields=_get_str_env(
            "GOOGLE_PEOPLE_PERSON_FIELDS",
            "names,emailAddresses,phoneNumbers,organizations,birthdays,addresses,metadata",
        ),
    )


@lru_cache(maxsize=1)
def get_notion_settings() -> NotionSettings:
    """
    Return Notion connector settings from environment variables.
    """

    return NotionSettings(
        api_key=_get_optional_str_env("NOTION_API_KEY"),
        database_id=_get_optional_str_env("NOTION_DATABASE_ID"),
        base_url=_get_str_env("NOTION_BASE_URL", "https://api.notion.com/v1"),
        notion_version=_get_str_env("NOTION_VERSION", "2022-06-28"),
        identity_property=_get_str_env("NOTION_IDENTITY_PROPERTY", "Google Contact ID"),
        title_property=_get_str_env("NOTION_TITLE_PROPERTY", "Name"),
        page_size=min(100, max(1, _get_int_env("NOTION_PAGE_SIZE", 100))),
    )


@lru_cache(maxsize=1)
def get_sync_settings() -> SyncSettings:
    """
    Return sync engine tuning settings from environment variables.
    """

    return SyncSettings(
        concurrency_width=max(1, _get_int_env("SYNC_CONCURRENCY_WIDTH", 5)),
        group_pause_seconds=max(0.0, _get_float_env("SYNC_GROUP_PAUSE_SECONDS", 1.0)),
        max_attempts=max(1, _get_int_env("SYNC_MAX_ATTEMPTS", 3)),
        retry_base_delay_seconds=max(0.0, _get_float_env("SYNC_RETRY_BASE_DELAY_SECONDS", 2.0)),
        fallback_record_delay_seconds=max(0.0, _get_float_env("SYNC_FALLBACK_RECORD_DELAY_SECONDS", 0.5)),
        window_size=max(1, _get_int_env("SYNC_WINDOW_SIZE", 25)),
        execution_budget_seconds=max(1.0, _get_float_env("SYNC_EXECUTION_BUDGET_SECONDS", 270.0)),
        rejection_abort_threshold=max(0, _get_int_env("SYNC_REJECTION_ABORT_THRESHOLD", 5)),
    )


@lru_cache(maxsize=1)
def get_checkpoint_settings() -> CheckpointSettings:
    """
    Return checkpoint storage settings from environment variables.

    Raises SyncConfigurationError for an unknown backend.
    """

    backend = _get_str_env("SYNC_CHECKPOINT_BACKEND", "sql").lower()
    if backend not in _ALLOWED_CHECKPOINT_BACKENDS:
        raise SyncConfigurationError(
            f"SYNC_CHECKPOINT_BACKEND '{backend}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_CHECKPOINT_BACKENDS)}."
        )
    budget = get_sync_settings().execution_budget_seconds
    return CheckpointSettings(
        backend=backend,
        namespace=_get_str_env("SYNC_CHECKPOINT_NAMESPACE", "synced_contacts"),
        page_size=max(1, _get_int_env("SYNC_CHECKPOINT_PAGE_SIZE", 500)),
        ttl_seconds=max(60, _get_int_env("SYNC_CHECKPOINT_TTL_SECONDS", 6 * 60 * 60)),
        max_entry_bytes=max(1024, _get_int_env("SYNC_CHECKPOINT_MAX_ENTRY_BYTES", 100_000)),
        dead_letter_namespace=_get_str_env("SYNC_DEAD_LETTER_NAMESPACE", "dead_letter_contacts"),
        dead_letter_ttl_seconds=max(60, _get_int_env("SYNC_DEAD_LETTER_TTL_SECONDS", 30 * 24 * 60 * 60)),
        lease_name=_get_str_env("SYNC_LEASE_NAME", "contact_sync_run"),
        lease_ttl_seconds=max(int(budget) + 1, _get_int_env("SYNC_LEASE_TTL_SECONDS", int(budget) + 60)),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return auto-sync scheduler settings from environment variables.
    """

    return SchedulerSettings(
        catch_up_interval_seconds=max(60, _get_int_env("SYNC_CATCH_UP_INTERVAL_SECONDS", 600)),
        maintenance_interval_seconds=max(60, _get_int_env("SYNC_MAINTENANCE_INTERVAL_SECONDS", 3600)),
        auto_start=_get_bool_env("SYNC_AUTO_START", False),
    )
