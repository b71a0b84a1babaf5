"""
contact_sync/api/routers package marker.
"""

from contact_sync.api.routers.sync_router import router as sync_router

__all__ = [
    "sync_router",
]
