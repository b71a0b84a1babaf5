"""
db/models/kv_entry.py

Expiring key-value entries backing sync checkpoints, dead letters and run leases.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class KeyValueEntry(Base, TimestampMixin):
    __tablename__ = "sync_kv_entries"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Serialized payload (JSON text for checkpoint pages)",
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_sync_kv_entries_expires_at", "expires_at"),
    )
