"""
contact_sync/api package marker.
"""
