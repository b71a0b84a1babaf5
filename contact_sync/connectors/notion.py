"""
contact_sync/connectors/notion.py

Notion connector: identity-key scan, page creation and database provisioning.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable

import requests

from contact_sync.config import ExternalHTTPSettings, NotionSettings
from contact_sync.connectors.base import BaseConnector
from contact_sync.domain.identity import IdentitySet
from contact_sync.domain.sync import CreateFailure, CreateResult, CreateSuccess
from contact_sync.errors import ConnectorRequestError, SyncConfigurationError

logger = logging.getLogger(__name__)

_STATUS_FALLBACK_CODES = {
    400: "validation_error",
    401: "unauthorized",
    404: "object_not_found",
    409: "conflict_error",
    429: "rate_limited",
}

_RELATIONSHIP_OPTIONS = (
    ("Friend", "green"),
    ("Family", "red"),
    ("Colleague", "blue"),
    ("Business", "yellow"),
    ("Acquaintance", "gray"),
)

_COMMS_CHANNEL_OPTIONS = (
    ("Email", "pink"),
    ("Phone", "green"),
    ("WhatsApp", "green"),
    ("LinkedIn", "blue"),
    ("Twitter/X", "default"),
    ("Instagram", "purple"),
    ("WeChat", "green"),
)


class NotionRequestError(ConnectorRequestError):
    """
    Notion API error carrying the machine-readable error code.
    """

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        self.code = code
        self.status_code = status_code
        super().__init__(f"notion: {code}: {message}")


def contacts_database_properties(
    *,
    title_property: str = "Name",
    identity_property: str = "Google Contact ID",
) -> dict[str, Any]:
    """
    Property schema of the Contacts database.

    Relationship, Comms Channel, Contact info and Archived are edited by hand
    in Notion and never written by the sync.
    """

    return {
        title_property: {"title": {}},
        "Email": {"email": {}},
        "Phone": {"phone_number": {}},
        "Company": {"rich_text": {}},
        "Job Title": {"rich_text": {}},
        "Birthdate": {"date": {}},
        "Full Address": {"rich_text": {}},
        "Country": {"rich_text": {}},
        "Contact Link": {"url": {}},
        identity_property: {"rich_text": {}},
        "Relationship": {
            "select": {"options": [{"name": name, "color": color} for name, color in _RELATIONSHIP_OPTIONS]},
        },
        "Comms Channel": {
            "multi_select": {"options": [{"name": name, "color": color} for name, color in _COMMS_CHANNEL_OPTIONS]},
        },
        "Contact info": {"rich_text": {}},
        "Archived": {"checkbox": {}},
    }


class NotionConnector(BaseConnector):
    """
    Sink connector for one Notion database.
    """

    def __init__(
        self,
        *,
        settings: NotionSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not settings.api_key:
            raise SyncConfigurationError("Notion configuration is missing: NOTION_API_KEY.")
        super().__init__(
            source="notion",
            http_settings=http_settings,
            session=session,
            sleep=sleep,
        )
        self._settings = settings
        self._base_url = settings.base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Notion-Version": self._settings.notion_version,
            "Content-Type": "application/json",
        }

    def _database_id(self) -> str:
        if not self._settings.database_id:
            raise SyncConfigurationError("Notion configuration is missing: NOTION_DATABASE_ID.")
        return self._settings.database_id

    def query_identity_keys(self) -> IdentitySet:
        """
        Page through the database and collect identity key -> page id.
        """

        url = f"{self._base_url}/databases/{self._database_id()}/query"
        identity_property = self._settings.identity_property
        identity_set = IdentitySet()
        cursor: str | None = None
        pages = 0

        while True:
            body: dict[str, Any] = {
                "page_size": self._settings.page_size,
                "filter": {"property": identity_property, "rich_text": {"is_not_empty": True}},
            }
            if cursor:
                body["start_cursor"] = cursor

            payload = self._request_json(method="POST", url=url, json_body=body)
            if not isinstance(payload, dict):
                raise ConnectorRequestError(f"{self.source}: unexpected query response shape.")
            pages += 1

            for page in payload.get("results", []) or []:
                properties = page.get("properties") or {}
                key = _plain_text(properties.get(identity_property))
                if key:
                    identity_set.add(key, page.get("id"))

            cursor = payload.get("next_cursor")
            if not payload.get("has_more") or not cursor:
                break

        logger.info(
            "Sink scan complete source=%s identities=%s pages=%s",
            self.source,
            len(identity_set),
            pages,
        )
        return identity_set

    def create_record(self, properties: dict[str, Any]) -> CreateResult:
        """
        Create one page. HTTP failures come back as CreateFailure; transport
        failures raise SinkTransportError.
        """

        response = self._send_once(
            method="POST",
            url=f"{self._base_url}/pages",
            json_body={
                "parent": {"database_id": self._database_id()},
                "properties": properties,
            },
        )
        return _to_create_result(response)

    def create_contacts_database(self, *, parent_page_id: str, title: str = "Contacts") -> dict[str, Any]:
        """
        Provision the Contacts database under ``parent_page_id``.

        Raises NotionRequestError with the API error code on failure.
        """

        response = self._send_once(
            method="POST",
            url=f"{self._base_url}/databases",
            json_body={
                "parent": {"type": "page_id", "page_id": parent_page_id},
                "icon": {"type": "emoji", "emoji": "\U0001f465"},
                "title": [{"type": "text", "text": {"content": title}}],
                "properties": contacts_database_properties(
                    title_property=self._settings.title_property,
                    identity_property=self._settings.identity_property,
                ),
            },
        )
        result = _to_create_result(response)
        if isinstance(result, CreateFailure):
            raise NotionRequestError(result.code, result.message, result.status_code)
        payload = response.json()
        logger.info("Notion database created id=%s", payload.get("id"))
        return payload


def _to_create_result(response: requests.Response) -> CreateResult:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if response.ok:
        if isinstance(payload, dict) and payload.get("id"):
            return CreateSuccess(handle=str(payload["id"]))
        return CreateFailure(
            code="invalid_response",
            message="success response without an id",
            status_code=response.status_code,
        )

    fallback_code = _STATUS_FALLBACK_CODES.get(response.status_code, f"http_{response.status_code}")
    if isinstance(payload, dict) and payload.get("object") == "error":
        return CreateFailure(
            code=str(payload.get("code") or fallback_code),
            message=str(payload.get("message") or ""),
            status_code=response.status_code,
        )
    return CreateFailure(
        code=fallback_code,
        message=(response.text or "")[:200],
        status_code=response.status_code,
    )


def _plain_text(prop: Any) -> str:
    if not isinstance(prop, dict):
        return ""
    fragments = prop.get("rich_text") or prop.get("title") or []
    return "".join(fragment.get("plain_text", "") for fragment in fragments if isinstance(fragment, dict)).strip()


_PAGE_ID_PATTERN = re.compile(
    r"([a-f0-9]{32})|([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})",
    re.IGNORECASE,
)


def parse_notion_page_id(value: str) -> str | None:
    """
    Extract a page id from a Notion page URL or raw id; dashes are removed.
    """

    match = _PAGE_ID_PATTERN.search(value or "")
    if match is None:
        return None
    return match.group(0).replace("-", "").lower()
