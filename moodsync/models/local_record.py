"""
LocalRecord — the on-device key/value table backing the Local Store Adapter.

Values are JSON text written by the synced collections. Keys are versioned
and owner-scoped, e.g. "u-42/@moodsync_entries_v1".
"""
from datetime import datetime
from sqlalchemy import String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from moodsync.db.base import Base


class LocalRecord(Base):
    __tablename__ = "local_records"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
