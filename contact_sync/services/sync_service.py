"""
contact_sync/services/sync_service.py

Builds the sync driver and its collaborators from environment settings.
"""

from __future__ import annotations

from functools import lru_cache

from contact_sync.config import (
    CheckpointSettings,
    get_checkpoint_settings,
    get_external_http_settings,
    get_google_contacts_settings,
    get_notion_settings,
    get_sync_settings,
)
from contact_sync.connectors import GoogleContactsConnector, NotionConnector
from contact_sync.mappers import NotionContactMapper
from contact_sync.repositories import (
    CheckpointStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    RunLease,
    SqlKeyValueStore,
)
from contact_sync.services.sync_driver import SyncDriver


def build_key_value_store(settings: CheckpointSettings) -> KeyValueStore:
    if settings.backend == "memory":
        return InMemoryKeyValueStore()

    from db.session import get_session_factory

    return SqlKeyValueStore(get_session_factory())


@lru_cache(maxsize=1)
def get_key_value_store() -> KeyValueStore:
    return build_key_value_store(get_checkpoint_settings())


def build_sync_driver(store: KeyValueStore) -> SyncDriver:
    """
    Wire a driver against ``store``.

    Raises SyncConfigurationError before any I/O when a credential or the
    target database id is missing.
    """

    google_settings = get_google_contacts_settings()
    notion_settings = get_notion_settings()
    google_settings.validate()
    notion_settings.validate()

    http_settings = get_external_http_settings()
    checkpoint_settings = get_checkpoint_settings()

    return SyncDriver(
        source=GoogleContactsConnector(settings=google_settings, http_settings=http_settings),
        sink=NotionConnector(settings=notion_settings, http_settings=http_settings),
        mapper=NotionContactMapper(
            title_property=notion_settings.title_property,
            identity_property=notion_settings.identity_property,
        ),
        checkpoint=CheckpointStore(
            store,
            namespace=checkpoint_settings.namespace,
            page_size=checkpoint_settings.page_size,
            ttl_seconds=checkpoint_settings.ttl_seconds,
            max_entry_bytes=checkpoint_settings.max_entry_bytes,
        ),
        dead_letters=CheckpointStore(
            store,
            namespace=checkpoint_settings.dead_letter_namespace,
            page_size=checkpoint_settings.page_size,
            ttl_seconds=checkpoint_settings.dead_letter_ttl_seconds,
            max_entry_bytes=checkpoint_settings.max_entry_bytes,
        ),
        settings=get_sync_settings(),
        lease=RunLease(
            store,
            name=checkpoint_settings.lease_name,
            ttl_seconds=checkpoint_settings.lease_ttl_seconds,
        ),
    )


@lru_cache(maxsize=1)
def get_sync_driver() -> SyncDriver:
    """
    Build and cache the sync driver.
    """

    return build_sync_driver(get_key_value_store())
