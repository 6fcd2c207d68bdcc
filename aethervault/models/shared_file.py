"""Model for client-side encrypted files shared through the vault."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, LargeBinary, String

from aethervault.core.time import as_utc, utcnow
from aethervault.db.base import Base


class FileState(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CONSUMED = "consumed"


class SharedFile(Base):
    """
    One uploaded artifact. The server only holds what a recipient needs to
    derive the key locally (salt, IVs, key hash), never the key itself.
    """
    __tablename__ = "shared_files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=False, index=True)
    blob_key = Column(String(255), nullable=False, unique=True)
    encrypted_file_name = Column(String(1024), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    file_salt = Column(LargeBinary, nullable=False)
    file_iv = Column(LargeBinary, nullable=True)
    master_key_hash = Column(String(255), nullable=True)
    metadata_iv = Column(LargeBinary, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    burn_after_read = Column(Boolean, default=False, nullable=False)
    download_count = Column(Integer, default=0, nullable=False)
    burned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def is_expired(self, now: datetime) -> bool:
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at < now

    def is_consumed(self) -> bool:
        return bool(self.burn_after_read) and ((self.download_count or 0) > 0 or self.burned_at is not None)

    def state(self, now: datetime) -> FileState:
        if self.is_expired(now):
            return FileState.EXPIRED
        if self.is_consumed():
            return FileState.CONSUMED
        return FileState.ACTIVE
