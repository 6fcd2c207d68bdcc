"""Per-phone row that serializes passcode sends."""
from sqlalchemy import Column, DateTime, Integer, String

from aethervault.db.base import Base


class SmsRateLimit(Base):
    """
    Locked for the length of an ``issue`` transaction so two sends to the
    same phone cannot both read the window before either has inserted.
    """
    __tablename__ = "sms_rate_limits"

    phone = Column(String(20), primary_key=True)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    send_count = Column(Integer, default=0, nullable=False)
