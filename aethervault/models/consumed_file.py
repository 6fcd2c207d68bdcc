"""Tombstone left behind when a burn-after-read file is destroyed."""
from sqlalchemy import Column, DateTime, String

from aethervault.core.time import utcnow
from aethervault.db.base import Base


class ConsumedFile(Base):
    """Lets lookups answer "consumed" instead of "not found" once the file row is gone."""
    __tablename__ = "consumed_files"

    file_id = Column(String(36), primary_key=True)
    owner_id = Column(String(36), nullable=False, index=True)
    consumed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
