"""
Create the Notion Contacts database the sync writes into.

Prompts for anything not given on the command line.
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace

from contact_sync.config import get_external_http_settings, get_notion_settings
from contact_sync.connectors.notion import NotionConnector, NotionRequestError, parse_notion_page_id
from contact_sync.errors import ConnectorRequestError, SinkTransportError

_API_KEY_PREFIXES = ("ntn_", "secret_")


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the Notion Contacts database.")
    parser.add_argument("--api-key", default=os.getenv("NOTION_API_KEY"), help="Notion integration secret.")
    parser.add_argument("--parent-page", default=None, help="Parent page URL or id.")
    parser.add_argument("--title", default="Contacts", help="Database title.")
    args = parser.parse_args()

    api_key = (args.api_key or input("Notion API key (starts with 'ntn_' or 'secret_'): ")).strip()
    if not api_key.startswith(_API_KEY_PREFIXES):
        print("Invalid API key format. Get your key from https://notion.so/my-integrations", file=sys.stderr)
        return 1

    parent = args.parent_page or input("Parent page URL (shared with your integration): ")
    parent_page_id = parse_notion_page_id(parent)
    if parent_page_id is None:
        print("Could not extract a page id. Copy the full page URL.", file=sys.stderr)
        return 1

    connector = NotionConnector(
        settings=replace(get_notion_settings(), api_key=api_key, database_id=None),
        http_settings=get_external_http_settings(),
    )

    try:
        database = connector.create_contacts_database(parent_page_id=parent_page_id, title=args.title)
    except NotionRequestError as exc:
        print("Error creating database:", file=sys.stderr)
        if exc.code == "unauthorized":
            print("  The API key is invalid or the integration has no access.", file=sys.stderr)
            print("  Make sure the parent page is shared with your integration.", file=sys.stderr)
        elif exc.code == "object_not_found":
            print("  Could not find the parent page.", file=sys.stderr)
            print("  Make sure the page exists and is shared with your integration.", file=sys.stderr)
        else:
            print(f"  {exc}", file=sys.stderr)
        return 1
    except (ConnectorRequestError, SinkTransportError) as exc:
        print(f"Error creating database: {exc}", file=sys.stderr)
        return 1

    database_id = str(database.get("id", "")).replace("-", "")
    print("Database created.")
    print(f"  URL: {database.get('url')}")
    print(f"  ID:  {database_id}")
    print(f"Set NOTION_DATABASE_ID={database_id} before running the sync.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
