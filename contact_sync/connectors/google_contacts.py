"""
contact_sync/connectors/google_contacts.py

Google People API connector listing the authenticated user's contacts.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

from contact_sync.config import ExternalHTTPSettings, GoogleContactsSettings
from contact_sync.connectors.base import BaseConnector
from contact_sync.domain.sync import SourceRecord
from contact_sync.errors import ConnectorRequestError

logger = logging.getLogger(__name__)

_TOKEN_REFRESH_MARGIN_SECONDS = 60.0


class GoogleContactsConnector(BaseConnector):
    """
    Source connector for ``people/me/connections``.

    Identity key is the person's ``resourceName`` (``people/c123...``).
    """

    def __init__(
        self,
        *,
        settings: GoogleContactsSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings.validate()
        super().__init__(
            source="google_contacts",
            http_settings=http_settings,
            session=session,
            sleep=sleep,
        )
        self._settings = settings
        self._access_token = settings.access_token
        # A static token is trusted until the API rejects it.
        self._token_expires_monotonic = float("inf") if settings.access_token else 0.0

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    def _ensure_token(self) -> None:
        if not self._settings.can_refresh:
            return
        if self._access_token and time.monotonic() < self._token_expires_monotonic:
            return

        try:
            response = self._session.post(
                self._settings.token_url,
                data={
                    "grant_type": "refresh_token",
                    "client_id": self._settings.client_id,
                    "client_secret": self._settings.client_secret,
                    "refresh_token": self._settings.refresh_token,
                },
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ConnectorRequestError(f"{self.source}: access token refresh failed.") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ConnectorRequestError(f"{self.source}: token response had no access_token.")
        expires_in = float(payload.get("expires_in", 3600))
        self._access_token = token
        self._token_expires_monotonic = time.monotonic() + max(0.0, expires_in - _TOKEN_REFRESH_MARGIN_SECONDS)
        logger.info("Google access token refreshed expires_in=%s", int(expires_in))

    def list_records(self) -> list[SourceRecord]:
        """
        Page through every connection. Records without a resourceName are skipped.
        """

        url = f"{self._settings.base_url.rstrip('/')}/people/me/connections"
        records: list[SourceRecord] = []
        page_token: str | None = None
        pages = 0
        skipped = 0

        while True:
            self._ensure_token()
            params: dict[str, Any] = {
                "pageSize": self._settings.page_size,
                "personFields": self._settings.person_fields,
            }
            if page_token:
                params["pageToken"] = page_token

            payload = self._request_json(method="GET", url=url, params=params)
            if not isinstance(payload, dict):
                raise ConnectorRequestError(f"{self.source}: unexpected response shape.")
            pages += 1

            for person in payload.get("connections", []) or []:
                record = self._to_record(person)
                if record is None:
                    skipped += 1
                    continue
                records.append(record)

            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        logger.info(
            "Source listing complete source=%s records=%s pages=%s skipped=%s",
            self.source,
            len(records),
            pages,
            skipped,
        )
        return records

    @staticmethod
    def _to_record(person: Any) -> SourceRecord | None:
        if not isinstance(person, dict):
            return None
        resource_name = (person.get("resourceName") or "").strip()
        if not resource_name:
            logger.warning("Skipping contact without resourceName etag=%s", person.get("etag"))
            return None
        return SourceRecord(
            identity_key=resource_name,
            display_name=_primary_display_name(person),
            attributes=person,
        )


def _primary_display_name(person: dict[str, Any]) -> str | None:
    names = person.get("names") or []
    if not names:
        return None
    primary = next(
        (name for name in names if (name.get("metadata") or {}).get("primary")),
        names[0],
    )
    display_name = (primary.get("displayName") or "").strip()
    return display_name or None
