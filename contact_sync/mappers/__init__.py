"""
contact_sync/mappers package exports.
"""

from contact_sync.mappers.contact_mapper import NotionContactMapper

__all__ = ["NotionContactMapper"]
