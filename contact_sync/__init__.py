"""
contact_sync package marker.
"""
