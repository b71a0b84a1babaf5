"""
contact_sync/domain/ports.py

Interfaces the sync engine needs from its collaborators.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from contact_sync.domain.identity import IdentitySet
from contact_sync.domain.sync import CreateResult, SourceRecord


class SourceProvider(Protocol):
    def list_records(self) -> list[SourceRecord]:
        """Page through the full source collection in its enumeration order."""
        ...


class SinkProvider(Protocol):
    def query_identity_keys(self) -> IdentitySet:
        """Page through every sink record carrying an identity key."""
        ...

    def create_record(self, properties: dict[str, Any]) -> CreateResult:
        """
        Create one sink record. Raises SinkTransportError when the request
        fails below the HTTP status level.
        """
        ...


FieldMapper = Callable[[SourceRecord], dict[str, Any]]
