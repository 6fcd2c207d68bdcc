"""Invitations for recipients who have no account yet."""
import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, String

from aethervault.core.time import utcnow
from aethervault.db.base import Base


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class Invitation(Base):
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False)
    recipient_email = Column(String(255), nullable=False, index=True)
    invitation_token = Column(String(128), nullable=False, unique=True)
    status = Column(Enum(InvitationStatus), default=InvitationStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    accepted_by_user_id = Column(String(36), nullable=True)
