"""
Cache Infrastructure Models
============================

SQLAlchemy ORM model for the local key/value store.

Cache entries, the snapshot and sync marks all live in this one table,
distinguished by key prefix.
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from itsm_grounding.infrastructure.database import Base


class KeyValueModel(Base):
    """
    Database model for one stored value.

    Maps to the 'kv_entries' table. ``value`` holds the JSON document and
    ``size_bytes`` its encoded length, used for quota accounting.
    """
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
