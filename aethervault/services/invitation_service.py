"""Invitation tokens for recipients who do not have an account yet."""
import logging
from dataclasses import dataclass
from typing import Iterable, List

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aethervault.core.config import InvitationPolicy
from aethervault.core.errors import Consumed, Expired, NotFound, Unauthorized, ValidationError
from aethervault.core.security import generate_invitation_token
from aethervault.core.time import Clock, as_utc, utcnow
from aethervault.models import Invitation, InvitationStatus, SharedFile

from .notification_service import NotificationSender

logger = logging.getLogger(__name__)


@dataclass
class InvitationResult:
    email: str
    success: bool
    invitation_id: str | None = None
    error: str | None = None
    detail: str | None = None


def normalize_email(raw: str) -> str:
    try:
        info = validate_email(raw, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(str(e)) from e
    return info.normalized.lower()


class InvitationEngine:

    def __init__(
        self,
        policy: InvitationPolicy,
        sender: NotificationSender,
        public_base_url: str,
        clock: Clock = utcnow,
    ):
        self.policy = policy
        self.sender = sender
        self.public_base_url = public_base_url.rstrip("/")
        self.clock = clock

    def invitation_link(self, token: str) -> str:
        return f"{self.public_base_url}/auth?invitation={token}"

    def _message(self, token: str, file_label: str, sender_name: str | None) -> tuple[str, str]:
        who = sender_name or "Someone"
        subject = f"{who} shared a secure file with you on AetherVault"
        body = (
            f"{who} has shared an end-to-end encrypted file with you: {file_label}\n\n"
            f"Create your AetherVault account to access it:\n{self.invitation_link(token)}\n\n"
            f"This invitation expires in {self.policy.ttl_days} days."
        )
        return subject, body

    def invite(
        self,
        db: Session,
        shared_file: SharedFile,
        sender_id: str,
        emails: Iterable[str],
        sender_name: str | None = None,
    ) -> List[InvitationResult]:
        """
        Create and send one invitation per valid address.

        Bad addresses and failed sends are reported per recipient; the batch
        only fails outright when there is nobody valid to invite.
        """
        if shared_file.owner_id != sender_id:
            raise Unauthorized("Only the file owner can send invitations")

        results: List[InvitationResult] = []
        valid: List[str] = []
        seen = set()
        for raw in emails:
            try:
                email = normalize_email(raw)
            except ValidationError as e:
                results.append(InvitationResult(email=raw, success=False, error=e.code, detail=e.detail))
                continue
            if email not in seen:
                seen.add(email)
                valid.append(email)

        if not valid:
            raise ValidationError("No valid email addresses provided")

        for email in valid:
            results.append(self._invite_one(db, shared_file, sender_id, email, sender_name))

        sent = sum(1 for r in results if r.success)
        logger.info(f"Sent {sent} of {len(results)} invitations for file {shared_file.id}")
        return results

    def _invite_one(
        self,
        db: Session,
        shared_file: SharedFile,
        sender_id: str,
        email: str,
        sender_name: str | None,
    ) -> InvitationResult:
        now = self.clock()
        token = generate_invitation_token(self.policy.token_bytes)
        invitation = Invitation(
            file_id=shared_file.id,
            sender_id=sender_id,
            recipient_email=email,
            invitation_token=token,
            status=InvitationStatus.PENDING,
            created_at=now,
            expires_at=now + self.policy.ttl,
        )
        try:
            db.add(invitation)
            db.commit()
            db.refresh(invitation)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store invitation for {email}: {e}", exc_info=True)
            return InvitationResult(email=email, success=False, error="storage_error", detail="Failed to create invitation")

        subject, body = self._message(token, shared_file.encrypted_file_name, sender_name)
        try:
            delivery = self.sender.send_email(email, subject, body)
        except Exception as e:
            logger.error(f"Email sender raised for invitation {invitation.id}: {e}", exc_info=True)
            return InvitationResult(
                email=email,
                success=False,
                invitation_id=invitation.id,
                error="delivery_error",
                detail="Failed to send invitation email",
            )

        if not delivery.ok:
            logger.warning(f"Invitation {invitation.id} not delivered to {email}: {delivery.error}")
            return InvitationResult(
                email=email,
                success=False,
                invitation_id=invitation.id,
                error="delivery_error",
                detail=delivery.error or "Failed to send invitation email",
            )
        return InvitationResult(email=email, success=True, invitation_id=invitation.id)

    def validate_token(self, db: Session, token: str) -> Invitation:
        if not token:
            raise ValidationError("No invitation token provided")

        invitation = db.query(Invitation).filter(Invitation.invitation_token == token).first()
        if not invitation:
            raise NotFound("Invalid invitation")
        if invitation.status == InvitationStatus.ACCEPTED:
            raise Consumed("Invitation has already been accepted")
        if invitation.status == InvitationStatus.EXPIRED:
            raise Expired("Invitation has expired")

        if self.clock() > as_utc(invitation.expires_at):
            (
                db.query(Invitation)
                .filter(Invitation.id == invitation.id, Invitation.status == InvitationStatus.PENDING)
                .update({Invitation.status: InvitationStatus.EXPIRED}, synchronize_session=False)
            )
            db.commit()
            raise Expired("Invitation has expired")
        return invitation

    def accept_token(self, db: Session, token: str, user_id: str) -> Invitation:
        if not user_id:
            raise ValidationError("user_id is required")
        invitation = self.validate_token(db, token)

        now = self.clock()
        updated = (
            db.query(Invitation)
            .filter(
                Invitation.id == invitation.id,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at >= now,
            )
            .update(
                {
                    Invitation.status: InvitationStatus.ACCEPTED,
                    Invitation.accepted_at: now,
                    Invitation.accepted_by_user_id: user_id,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        db.refresh(invitation)

        if not updated:
            # lost a race; report whatever state won
            self.validate_token(db, token)
            raise Consumed("Invitation has already been accepted")

        logger.info(f"Invitation {invitation.id} accepted by user {user_id}")
        return invitation

    def pending_for_email(self, db: Session, email: str) -> List[Invitation]:
        email = normalize_email(email)
        return (
            db.query(Invitation)
            .filter(
                Invitation.recipient_email == email,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at >= self.clock(),
            )
            .order_by(Invitation.created_at.desc())
            .all()
        )

    def accept_pending_for_email(self, db: Session, email: str, user_id: str) -> int:
        """Accept every live invitation addressed to a newly registered user."""
        email = normalize_email(email)
        now = self.clock()
        updated = (
            db.query(Invitation)
            .filter(
                Invitation.recipient_email == email,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at >= now,
            )
            .update(
                {
                    Invitation.status: InvitationStatus.ACCEPTED,
                    Invitation.accepted_at: now,
                    Invitation.accepted_by_user_id: user_id,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        if updated:
            logger.info(f"Auto-accepted {updated} invitations for {email}")
        return updated
