"""
contact_sync/mappers/contact_mapper.py

Google People payload -> Notion page properties.
"""

from __future__ import annotations

from typing import Any

from contact_sync.domain.sync import SourceRecord
from contact_sync.errors import RecordMappingError

# Notion rejects rich text fragments longer than this.
MAX_RICH_TEXT_LENGTH = 2000

CONTACT_LINK_TEMPLATE = "https://contacts.google.com/person/{person_id}"


def _first(person: dict[str, Any], field_name: str) -> dict[str, Any]:
    values = person.get(field_name) or []
    if not values:
        return {}
    primary = next(
        (value for value in values if (value.get("metadata") or {}).get("primary")),
        values[0],
    )
    return primary if isinstance(primary, dict) else {}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()[:MAX_RICH_TEXT_LENGTH]


def _rich_text(value: str) -> dict[str, Any]:
    return {"rich_text": [{"type": "text", "text": {"content": value}}]}


def _birthdate(person: dict[str, Any]) -> str | None:
    date = _first(person, "birthdays").get("date") or {}
    year, month, day = date.get("year"), date.get("month"), date.get("day")
    # Notion dates need a year; yearless birthdays are left empty.
    if not (year and month and day):
        return None
    return f"{int(year):04d}-{int(month):02d}-{int(day):02d}"


class NotionContactMapper:
    """
    Maps one contact to the Contacts database schema.

    The identity property is always part of the returned set, so the
    correlation key is written in the same request that creates the page.
    """

    def __init__(self, *, title_property: str = "Name", identity_property: str = "Google Contact ID") -> None:
        self._title_property = title_property
        self._identity_property = identity_property

    def __call__(self, record: SourceRecord) -> dict[str, Any]:
        return self.map(record)

    def display_name(self, record: SourceRecord) -> str:
        """
        Name, then organization, then email. Raises RecordMappingError when
        none is present.
        """

        person = record.attributes
        for candidate in (
            record.display_name,
            _first(person, "organizations").get("name"),
            _first(person, "emailAddresses").get("value"),
        ):
            text = _text(candidate)
            if text:
                return text
        raise RecordMappingError(f"Contact {record.identity_key} has no usable display name.")

    def map(self, record: SourceRecord) -> dict[str, Any]:
        person = record.attributes
        organization = _first(person, "organizations")
        address = _first(person, "addresses")

        properties: dict[str, Any] = {
            self._title_property: {
                "title": [{"type": "text", "text": {"content": self.display_name(record)}}],
            },
            self._identity_property: _rich_text(record.identity_key),
        }

        email = _text(_first(person, "emailAddresses").get("value"))
        if email:
            properties["Email"] = {"email": email}

        phone = _text(_first(person, "phoneNumbers").get("value"))
        if phone:
            properties["Phone"] = {"phone_number": phone}

        for property_name, value in (
            ("Company", organization.get("name")),
            ("Job Title", organization.get("title")),
            ("Full Address", address.get("formattedValue")),
            ("Country", address.get("country")),
        ):
            text = _text(value)
            if text:
                properties[property_name] = _rich_text(text)

        birthdate = _birthdate(person)
        if birthdate:
            properties["Birthdate"] = {"date": {"start": birthdate}}

        person_id = record.identity_key.rsplit("/", 1)[-1]
        if person_id:
            properties["Contact Link"] = {"url": CONTACT_LINK_TEMPLATE.format(person_id=person_id)}

        return properties
