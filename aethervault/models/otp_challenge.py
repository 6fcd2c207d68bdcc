"""SMS one-time passcode challenge."""
import uuid

from sqlalchemy import Column, DateTime, Index, Integer, String

from aethervault.core.time import utcnow
from aethervault.db.base import Base


class OtpChallenge(Base):
    """One row per passcode send; only the keyed hash of the code is kept."""
    __tablename__ = "otp_challenges"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), nullable=False)
    recipient_phone = Column(String(20), nullable=False, index=True)
    recipient_id = Column(String(36), nullable=True)
    passcode_hash = Column(String(64), nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    provider_message_id = Column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_otp_challenges_file_phone_created", "file_id", "recipient_phone", "created_at"),
    )
