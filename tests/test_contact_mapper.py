"""
tests/test_contact_mapper.py

Contact -> Notion property mapping.
"""

from __future__ import annotations

import pytest

from contact_sync.domain.sync import SourceRecord
from contact_sync.errors import RecordMappingError
from contact_sync.mappers.contact_mapper import MAX_RICH_TEXT_LENGTH, NotionContactMapper

FULL_PERSON = {
    "resourceName": "people/c42",
    "names": [{"displayName": "Ada Lovelace", "metadata": {"primary": True}}],
    "emailAddresses": [
        {"value": "old@example.com"},
        {"value": "ada@example.com", "metadata": {"primary": True}},
    ],
    "phoneNumbers": [{"value": "+44 20 7946 0000"}],
    "organizations": [{"name": "Analytical Engines", "title": "Analyst"}],
    "addresses": [{"formattedValue": "12 St James's Square, London", "country": "United Kingdom"}],
    "birthdays": [{"date": {"year": 1815, "month": 12, "day": 10}}],
}


def _record(person: dict, display_name: str | None = None) -> SourceRecord:
    return SourceRecord(identity_key=person["resourceName"], display_name=display_name, attributes=person)


class TestNotionContactMapper:
    def test_maps_every_field(self) -> None:
        properties = NotionContactMapper()(_record(FULL_PERSON, "Ada Lovelace"))

        assert properties["Name"]["title"][0]["text"]["content"] == "Ada Lovelace"
        assert properties["Google Contact ID"]["rich_text"][0]["text"]["content"] == "people/c42"
        assert properties["Email"] == {"email": "ada@example.com"}
        assert properties["Phone"] == {"phone_number": "+44 20 7946 0000"}
        assert properties["Company"]["rich_text"][0]["text"]["content"] == "Analytical Engines"
        assert properties["Job Title"]["rich_text"][0]["text"]["content"] == "Analyst"
        assert properties["Country"]["rich_text"][0]["text"]["content"] == "United Kingdom"
        assert properties["Birthdate"] == {"date": {"start": "1815-12-10"}}
        assert properties["Contact Link"] == {"url": "https://contacts.google.com/person/c42"}

    def test_minimal_contact_has_title_and_identity_only(self) -> None:
        properties = NotionContactMapper()(_record({"resourceName": "people/c1"}, "Solo"))

        assert set(properties) == {"Name", "Google Contact ID", "Contact Link"}

    def test_custom_property_names(self) -> None:
        mapper = NotionContactMapper(title_property="Full name", identity_property="Source ID")

        properties = mapper(_record({"resourceName": "people/c1"}, "Solo"))

        assert "Full name" in properties
        assert "Source ID" in properties

    def test_display_name_falls_back_to_organization_then_email(self) -> None:
        mapper = NotionContactMapper()
        org_only = {"resourceName": "people/c1", "organizations": [{"name": "Acme"}]}
        email_only = {"resourceName": "people/c2", "emailAddresses": [{"value": "x@example.com"}]}

        assert mapper.display_name(_record(org_only)) == "Acme"
        assert mapper.display_name(_record(email_only)) == "x@example.com"

    def test_unnamed_contact_cannot_be_mapped(self) -> None:
        with pytest.raises(RecordMappingError):
            NotionContactMapper()(_record({"resourceName": "people/c1"}))

    def test_yearless_birthday_omitted(self) -> None:
        person = {"resourceName": "people/c1", "birthdays": [{"date": {"month": 3, "day": 4}}]}

        assert "Birthdate" not in NotionContactMapper()(_record(person, "No Year"))

    def test_long_text_truncated(self) -> None:
        person = {"resourceName": "people/c1", "addresses": [{"formattedValue": "x" * 5000}]}

        properties = NotionContactMapper()(_record(person, "Far Away"))

        content = properties["Full Address"]["rich_text"][0]["text"]["content"]
        assert len(content) == MAX_RICH_TEXT_LENGTH
