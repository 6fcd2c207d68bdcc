"""Sliding-window limiter over recent passcode sends per phone number."""
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from aethervault.core.config import RateLimitPolicy
from aethervault.core.time import Clock, as_utc, utcnow
from aethervault.models import OtpChallenge, SmsRateLimit

_INSERT_IF_MISSING = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining_minutes: int = 0
    recent_sends: int = 0


class SmsRateLimiter:
    """
    There is no separate reservation: creating the ``OtpChallenge`` row in
    the same transaction is the counted event. The window is anchored to
    ``now - window`` rather than a calendar bucket.

    ``check`` first locks the phone's ``SmsRateLimit`` row, so a concurrent
    send for the same phone waits until this transaction commits or rolls
    back before it can read the window.
    """

    def __init__(self, policy: RateLimitPolicy, clock: Clock = utcnow):
        self.policy = policy
        self.clock = clock

    def _lock_phone(self, db: Session, phone: str) -> SmsRateLimit:
        dialect = db.get_bind().dialect.name
        if dialect in _INSERT_IF_MISSING:
            stmt = (
                _INSERT_IF_MISSING[dialect](SmsRateLimit)
                .values(phone=phone, send_count=0)
                .on_conflict_do_nothing(index_elements=["phone"])
            )
        else:
            # MySQL and MariaDB
            stmt = insert(SmsRateLimit).values(phone=phone, send_count=0).prefix_with("IGNORE")
        db.execute(stmt)
        return (
            db.query(SmsRateLimit)
            .filter(SmsRateLimit.phone == phone)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def check(self, db: Session, phone: str) -> RateLimitDecision:
        """Hold the phone's lock and read the window. The caller commits or rolls back."""
        self._lock_phone(db, phone)

        now = self.clock()
        cutoff = now - self.policy.window
        recent = (
            db.query(OtpChallenge.created_at)
            .filter(
                OtpChallenge.recipient_phone == phone,
                OtpChallenge.created_at >= cutoff,
            )
            .order_by(OtpChallenge.created_at.asc())
            .all()
        )
        if len(recent) < self.policy.max_sends:
            return RateLimitDecision(allowed=True, recent_sends=len(recent))

        oldest = as_utc(recent[0].created_at)
        remaining_seconds = ((oldest + self.policy.window) - now).total_seconds()
        remaining = max(1, math.ceil(remaining_seconds / 60))
        return RateLimitDecision(allowed=False, remaining_minutes=remaining, recent_sends=len(recent))

    def record_send(self, db: Session, phone: str, sent_at: datetime) -> None:
        db.query(SmsRateLimit).filter(SmsRateLimit.phone == phone).update(
            {SmsRateLimit.last_sent_at: sent_at, SmsRateLimit.send_count: SmsRateLimit.send_count + 1}
        )
