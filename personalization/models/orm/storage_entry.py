from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, PrimaryKeyConstraint, String, Text

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageEntryORM(Base):
    """One serialized value in a logical key-value scope.

    ``scope`` is ``assignments`` or ``usage-history``; ``key`` is the visitor id.
    """

    __tablename__ = "storage_entries"

    scope = Column(String, nullable=False)
    key = Column(String, nullable=False, index=True)
    value = Column(Text, nullable=False)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("scope", "key", name="storage_entry_pk"),
    )
