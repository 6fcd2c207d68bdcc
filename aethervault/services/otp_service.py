"""
SMS one-time passcodes: issuance, verification and statistics.

Challenges are append-only: every send creates a new row and verification
always targets the most recent row for a (file, phone) pair. Only a keyed
hash of the code is stored.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from aethervault.core.config import AccessPolicy, OtpPolicy
from aethervault.core.errors import (
    BadCode,
    Expired,
    MaxAttemptsReached,
    NotFound,
    RateLimited,
    Unauthorized,
    ValidationError,
)
from aethervault.core.phone import mask_phone, normalize_phone
from aethervault.core.security import generate_passcode, hash_passcode, passcode_matches
from aethervault.core.time import Clock, as_utc, utcnow
from aethervault.models import OtpChallenge

from .notification_service import NotificationSender
from .rate_limiter import SmsRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class IssuedChallenge:
    challenge_id: str
    phone: str
    expires_at: datetime
    delivered: bool
    provider_message_id: str | None = None
    delivery_error: str | None = None


@dataclass
class VerificationResult:
    challenge_id: str
    verified_at: datetime
    already_verified: bool = False


def build_passcode_message(code: str, file_label: str, ttl_minutes: int) -> str:
    return (
        f"AetherVault security code: {code}\n\n"
        f'Your secure file "{file_label}" is ready for download.\n'
        f"Enter this code to access your file. Code expires in {ttl_minutes} minutes.\n\n"
        "Never share this code with anyone."
    )


class OtpEngine:

    def __init__(
        self,
        policy: OtpPolicy,
        rate_limiter: SmsRateLimiter,
        sender: NotificationSender,
        secret: str,
        clock: Clock = utcnow,
    ):
        if not secret:
            raise ValueError("A passcode secret is required")
        self.policy = policy
        self.rate_limiter = rate_limiter
        self.sender = sender
        self.secret = secret
        self.clock = clock
        self._code_shape = re.compile(rf"^\d{{{policy.code_digits}}}$")

    def issue(
        self,
        db: Session,
        file_id: str,
        phone: str,
        file_label: str,
        recipient_id: str | None = None,
    ) -> IssuedChallenge:
        """
        Create a challenge and text the code.

        A failed send still leaves the row in place so it keeps counting
        against the rate limit; the caller learns about it through
        ``delivered``.
        """
        phone = normalize_phone(phone)

        decision = self.rate_limiter.check(db, phone)
        if not decision.allowed:
            db.rollback()
            logger.info(f"Passcode send to {mask_phone(phone)} rate limited ({decision.remaining_minutes} min left)")
            raise RateLimited(decision.remaining_minutes)

        now = self.clock()
        code = generate_passcode(self.policy.code_digits)
        challenge_id = str(uuid.uuid4())
        challenge = OtpChallenge(
            id=challenge_id,
            file_id=file_id,
            recipient_phone=phone,
            recipient_id=recipient_id,
            passcode_hash=hash_passcode(code, self.secret, challenge_id),
            attempts=0,
            max_attempts=self.policy.max_attempts,
            created_at=now,
            expires_at=now + self.policy.ttl,
        )
        db.add(challenge)
        self.rate_limiter.record_send(db, phone, now)
        # releases the phone lock taken by check()
        db.commit()

        body = build_passcode_message(code, file_label, self.policy.ttl_minutes)
        try:
            result = self.sender.send_sms(phone, body)
        except Exception as e:
            logger.error(f"SMS sender raised for challenge {challenge_id}: {e}", exc_info=True)
            return IssuedChallenge(
                challenge_id=challenge_id,
                phone=phone,
                expires_at=challenge.expires_at,
                delivered=False,
                delivery_error="Failed to send SMS",
            )

        if result.ok:
            challenge.provider_message_id = result.provider_message_id
            db.add(challenge)
            db.commit()
        else:
            logger.warning(f"Passcode for file {file_id} not delivered to {mask_phone(phone)}: {result.error}")

        return IssuedChallenge(
            challenge_id=challenge_id,
            phone=phone,
            expires_at=challenge.expires_at,
            delivered=result.ok,
            provider_message_id=result.provider_message_id,
            delivery_error=result.error,
        )

    def latest_challenge(self, db: Session, file_id: str, phone: str) -> OtpChallenge | None:
        return (
            db.query(OtpChallenge)
            .filter(OtpChallenge.file_id == file_id, OtpChallenge.recipient_phone == phone)
            .order_by(OtpChallenge.created_at.desc())
            .first()
        )

    def verify(self, db: Session, file_id: str, phone: str, code: str) -> VerificationResult:
        phone = normalize_phone(phone)
        if not isinstance(code, str) or not self._code_shape.match(code):
            raise ValidationError(f"Passcode must be {self.policy.code_digits} digits")

        challenge = self.latest_challenge(db, file_id, phone)
        if not challenge:
            raise NotFound("No passcode was sent for this file and phone number")

        now = self.clock()
        if challenge.verified_at is None and now > as_utc(challenge.expires_at):
            raise Expired("Passcode has expired")

        # a verified challenge is terminal: answer from it, never write to it
        if challenge.verified_at is not None:
            if passcode_matches(code, challenge.passcode_hash, self.secret, challenge.id):
                return VerificationResult(challenge.id, as_utc(challenge.verified_at), already_verified=True)
            raise BadCode(max(0, challenge.max_attempts - challenge.attempts))

        # checked before hashing so nothing is spent past the cap
        if challenge.attempts >= challenge.max_attempts:
            raise MaxAttemptsReached()

        if passcode_matches(code, challenge.passcode_hash, self.secret, challenge.id):
            return self._mark_verified(db, challenge, now)
        return self._record_failure(db, challenge)

    def _mark_verified(self, db: Session, challenge: OtpChallenge, now: datetime) -> VerificationResult:
        updated = (
            db.query(OtpChallenge)
            .filter(
                OtpChallenge.id == challenge.id,
                OtpChallenge.verified_at.is_(None),
                OtpChallenge.attempts < OtpChallenge.max_attempts,
            )
            .update({OtpChallenge.verified_at: now}, synchronize_session=False)
        )
        db.commit()
        db.refresh(challenge)

        if updated:
            logger.info(f"Challenge {challenge.id} verified for file {challenge.file_id}")
            return VerificationResult(challenge.id, now)
        if challenge.verified_at is not None:
            return VerificationResult(challenge.id, as_utc(challenge.verified_at), already_verified=True)
        raise MaxAttemptsReached()

    def _record_failure(self, db: Session, challenge: OtpChallenge) -> VerificationResult:
        updated = (
            db.query(OtpChallenge)
            .filter(
                OtpChallenge.id == challenge.id,
                OtpChallenge.verified_at.is_(None),
                OtpChallenge.attempts < OtpChallenge.max_attempts,
            )
            .update({OtpChallenge.attempts: OtpChallenge.attempts + 1}, synchronize_session=False)
        )
        db.commit()
        db.refresh(challenge)

        if not updated:
            if challenge.verified_at is not None:
                # verified concurrently; the wrong code still fails
                raise BadCode(max(0, challenge.max_attempts - challenge.attempts))
            raise MaxAttemptsReached()
        remaining = challenge.max_attempts - challenge.attempts
        logger.info(f"Bad passcode for challenge {challenge.id} ({remaining} attempts left)")
        raise BadCode(remaining)

    def require_verified(
        self,
        db: Session,
        file_id: str,
        phone: str,
        verification_id: str | None,
        access: AccessPolicy,
    ) -> OtpChallenge:
        """Check that ``verification_id`` is the current, fresh proof for the pair."""
        phone = normalize_phone(phone)
        challenge = self.latest_challenge(db, file_id, phone)
        if (
            not challenge
            or not verification_id
            or challenge.id != verification_id
            or challenge.verified_at is None
        ):
            raise Unauthorized("Passcode verification required")

        if as_utc(challenge.verified_at) + access.verified_window < self.clock():
            raise Expired("Verification has lapsed. Request a new code.")
        return challenge

    def stats(self, db: Session, file_id: str) -> dict:
        rows = (
            db.query(OtpChallenge)
            .filter(OtpChallenge.file_id == file_id)
            .order_by(OtpChallenge.created_at.desc())
            .all()
        )
        now = self.clock()
        summary = {"total": len(rows), "verified": 0, "expired": 0, "locked": 0, "pending": 0, "details": []}
        for row in rows:
            expired = now > as_utc(row.expires_at)
            if row.verified_at is not None:
                summary["verified"] += 1
            elif row.attempts >= row.max_attempts:
                summary["locked"] += 1
            elif expired:
                summary["expired"] += 1
            else:
                summary["pending"] += 1
            summary["details"].append(
                {
                    "phone": row.recipient_phone,
                    "verified": row.verified_at is not None,
                    "expired": expired,
                    "attempts": row.attempts,
                    "sent_at": as_utc(row.created_at),
                }
            )
        return summary
