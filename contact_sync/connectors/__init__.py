"""
contact_sync/connectors package exports.
"""

from contact_sync.connectors.base import BaseConnector
from contact_sync.connectors.google_contacts import GoogleContactsConnector
from contact_sync.connectors.notion import NotionConnector, NotionRequestError, parse_notion_page_id

__all__ = [
    "BaseConnector",
    "GoogleContactsConnector",
    "NotionConnector",
    "NotionRequestError",
    "parse_notion_page_id",
]
