"""Audit trail of released metadata and recorded downloads."""
import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text

from aethervault.core.time import utcnow
from aethervault.db.base import Base


class AccessEvent(str, enum.Enum):
    METADATA_RELEASED = "metadata_released"
    DOWNLOAD_RECORDED = "download_recorded"


class FileAccessLog(Base):
    __tablename__ = "file_access_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), nullable=False, index=True)
    event = Column(Enum(AccessEvent), nullable=False)
    recipient_phone = Column(String(20), nullable=True)
    verification_id = Column(String(36), nullable=True)
    download_count = Column(Integer, nullable=True)
    at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    ip_address = Column(String(45), nullable=True)  # IPv4/IPv6
    user_agent = Column(Text, nullable=True)
