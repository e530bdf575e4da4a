# catalog_sync/models/custom_object.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import String, Integer, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from catalog_sync.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomObject(Base):
    """One JSON document per (container, key); `version` increments on every write."""

    __tablename__ = "custom_objects"
    __table_args__ = (UniqueConstraint("container", "key", name="uq_custom_objects_container_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    container: Mapped[str] = mapped_column(String(128), index=True)
    key: Mapped[str] = mapped_column(String(128), index=True)
    value: Mapped[str] = mapped_column(Text)  # raw json document
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
