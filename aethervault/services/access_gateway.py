"""
Caller-facing operations of the vault.

The gateway owns the download path: look the file up, re-check its
lifecycle state, require a fresh passcode verification for the exact
(file, phone) pair, and only then release the decryption-enabling metadata
and a short-lived download URL. Everything else is delegated to the
engines it is built from.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from sqlalchemy.orm import Session

from aethervault.core.config import AccessPolicy, Settings
from aethervault.core.errors import RateLimited, ShareError
from aethervault.core.phone import normalize_phone
from aethervault.core.time import Clock, utcnow
from aethervault.models import AccessEvent, FileAccessLog, FileState, Invitation, SharedFile

from . import audit_service
from .blob_store import BlobStore, build_blob_store
from .file_lifecycle_service import DownloadRecord, FileLifecycleManager, UploadTicket
from .invitation_service import InvitationEngine, InvitationResult
from .notification_service import NotificationSender, build_notification_sender
from .otp_service import OtpEngine, VerificationResult
from .rate_limiter import SmsRateLimiter
from .share_link_service import build_share_link_and_qr

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    phone: str | None
    email: str | None = None
    user_id: str | None = None


@dataclass
class PasscodeSendResult:
    phone: str | None
    email: str | None = None
    success: bool = False
    verification_id: str | None = None
    provider_message_id: str | None = None
    error: str | None = None
    detail: str | None = None
    remaining_minutes: int | None = None


@dataclass
class DownloadGrant:
    file_id: str
    verification_id: str
    file_size: int
    file_salt: bytes
    file_iv: bytes | None
    metadata_iv: bytes | None
    master_key_hash: str | None
    burn_after_read: bool
    download_count: int
    download_url: str
    url_expires_at: datetime


@dataclass
class RequestContext:
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class ShareLink:
    file_id: str
    share_url: str
    qr_png_base64: str


@dataclass
class OwnedFile:
    record: SharedFile
    state: FileState


class AccessGateway:

    def __init__(
        self,
        lifecycle: FileLifecycleManager,
        otp: OtpEngine,
        invitations: InvitationEngine,
        access_policy: AccessPolicy,
        public_base_url: str,
        clock: Clock = utcnow,
    ):
        self.lifecycle = lifecycle
        self.otp = otp
        self.invitations = invitations
        self.access_policy = access_policy
        self.public_base_url = public_base_url
        self.clock = clock

    # ---------- Owner operations ----------

    def initiate_upload(self, db: Session, owner_id: str, **fields) -> UploadTicket:
        return self.lifecycle.begin_upload(db, owner_id, **fields)

    def complete_upload(self, db: Session, file_id: str, owner_id: str, **fields) -> SharedFile:
        return self.lifecycle.complete_upload(db, file_id, owner_id, **fields)

    def list_files(self, db: Session, owner_id: str) -> List[OwnedFile]:
        return [OwnedFile(record=f, state=s) for f, s in self.lifecycle.list_for_owner(db, owner_id)]

    def revoke_file(self, db: Session, file_id: str, owner_id: str) -> None:
        self.lifecycle.revoke(db, file_id, owner_id)

    def share_link(self, db: Session, file_id: str, owner_id: str) -> ShareLink:
        self.lifecycle.get_owned(db, file_id, owner_id)
        self.lifecycle.get_download_gate(db, file_id)
        share_url, qr = build_share_link_and_qr(self.public_base_url, file_id)
        return ShareLink(file_id=file_id, share_url=share_url, qr_png_base64=qr)

    def passcode_stats(self, db: Session, file_id: str, owner_id: str) -> dict:
        self.lifecycle.get_owned(db, file_id, owner_id)
        return self.otp.stats(db, file_id)

    def access_history(self, db: Session, file_id: str, owner_id: str) -> List[FileAccessLog]:
        self.lifecycle.get_owned(db, file_id, owner_id)
        return audit_service.access_history(db, file_id)

    # ---------- Passcodes ----------

    def send_passcode(self, db: Session, file_id: str, recipients: Iterable[Recipient]) -> List[PasscodeSendResult]:
        """
        Issue one challenge per recipient. Per-recipient failures (bad phone,
        rate limit, undelivered SMS) are reported, never raised.
        """
        shared_file = self.lifecycle.get_download_gate(db, file_id)

        results: List[PasscodeSendResult] = []
        for recipient in recipients:
            try:
                phone = normalize_phone(recipient.phone)
            except ShareError as e:
                results.append(
                    PasscodeSendResult(
                        phone=recipient.phone, email=recipient.email, error=e.code, detail=e.detail
                    )
                )
                continue

            try:
                issued = self.otp.issue(
                    db, file_id, phone, shared_file.encrypted_file_name, recipient_id=recipient.user_id
                )
            except RateLimited as e:
                results.append(
                    PasscodeSendResult(
                        phone=phone,
                        email=recipient.email,
                        error=e.code,
                        detail=e.detail,
                        remaining_minutes=e.remaining_minutes,
                    )
                )
                continue
            except ShareError as e:
                results.append(PasscodeSendResult(phone=phone, email=recipient.email, error=e.code, detail=e.detail))
                continue

            results.append(
                PasscodeSendResult(
                    phone=phone,
                    email=recipient.email,
                    success=issued.delivered,
                    verification_id=issued.challenge_id,
                    provider_message_id=issued.provider_message_id,
                    error=None if issued.delivered else "delivery_error",
                    detail=issued.delivery_error,
                )
            )

        sent = sum(1 for r in results if r.success)
        logger.info(f"Sent {sent} of {len(results)} passcodes for file {file_id}")
        return results

    def verify_passcode(self, db: Session, file_id: str, phone: str, code: str) -> VerificationResult:
        return self.otp.verify(db, file_id, phone, code)

    # ---------- Download path ----------

    def fetch_file_metadata_for_download(
        self,
        db: Session,
        file_id: str,
        phone: str,
        verification_id: str | None,
        context: RequestContext | None = None,
    ) -> DownloadGrant:
        # lifecycle may have changed since the passcode was verified
        shared_file = self.lifecycle.get_download_gate(db, file_id)
        challenge = self.otp.require_verified(db, file_id, phone, verification_id, self.access_policy)

        ttl = self.access_policy.download_url_ttl_seconds
        download_url = self.lifecycle.download_url(shared_file, ttl)
        now = self.clock()

        context = context or RequestContext()
        audit_service.log_access(
            db,
            file_id=file_id,
            event=AccessEvent.METADATA_RELEASED,
            recipient_phone=challenge.recipient_phone,
            verification_id=challenge.id,
            download_count=shared_file.download_count,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            at_utc=now,
        )
        logger.info(f"Released download metadata for file {file_id} (verification {challenge.id})")

        return DownloadGrant(
            file_id=shared_file.id,
            verification_id=challenge.id,
            file_size=shared_file.file_size,
            file_salt=shared_file.file_salt,
            file_iv=shared_file.file_iv,
            metadata_iv=shared_file.metadata_iv,
            master_key_hash=shared_file.master_key_hash,
            burn_after_read=bool(shared_file.burn_after_read),
            download_count=shared_file.download_count,
            download_url=download_url,
            url_expires_at=now + timedelta(seconds=ttl),
        )

    def record_download(
        self,
        db: Session,
        file_id: str,
        phone: str,
        verification_id: str | None,
        context: RequestContext | None = None,
    ) -> DownloadRecord:
        """
        Confirm that the client received the bytes. No lifecycle gate here:
        a concurrent confirmation on a file that was just burned still counts.
        """
        self.lifecycle.get(db, file_id)
        challenge = self.otp.require_verified(db, file_id, phone, verification_id, self.access_policy)
        record = self.lifecycle.record_download(db, file_id)

        context = context or RequestContext()
        audit_service.log_access(
            db,
            file_id=file_id,
            event=AccessEvent.DOWNLOAD_RECORDED,
            recipient_phone=challenge.recipient_phone,
            verification_id=challenge.id,
            download_count=record.download_count,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            at_utc=self.clock(),
        )
        return record

    # ---------- Invitations ----------

    def send_invitations(
        self,
        db: Session,
        file_id: str,
        sender_id: str,
        emails: Iterable[str],
        sender_name: str | None = None,
    ) -> List[InvitationResult]:
        shared_file = self.lifecycle.get_owned(db, file_id, sender_id)
        self.lifecycle.get_download_gate(db, file_id)
        return self.invitations.invite(db, shared_file, sender_id, emails, sender_name=sender_name)

    def validate_invitation(self, db: Session, token: str) -> Invitation:
        return self.invitations.validate_token(db, token)

    def accept_invitation(self, db: Session, token: str, user_id: str) -> Invitation:
        return self.invitations.accept_token(db, token, user_id)

    def pending_invitations(self, db: Session, email: str) -> List[Invitation]:
        return self.invitations.pending_for_email(db, email)

    def accept_pending_invitations(self, db: Session, email: str, user_id: str) -> int:
        return self.invitations.accept_pending_for_email(db, email, user_id)


def build_gateway(
    settings: Settings,
    clock: Clock = utcnow,
    blob_store: BlobStore | None = None,
    sender: NotificationSender | None = None,
) -> AccessGateway:
    """Wire every engine from settings; each gets its own policy and the shared clock."""
    blob_store = blob_store or build_blob_store(settings, clock)
    sender = sender or build_notification_sender(settings)

    lifecycle = FileLifecycleManager(blob_store, settings.upload_policy(), clock=clock)
    rate_limiter = SmsRateLimiter(settings.rate_limit_policy(), clock=clock)
    otp = OtpEngine(settings.otp_policy(), rate_limiter, sender, settings.passcode_secret, clock=clock)
    invitations = InvitationEngine(settings.invitation_policy(), sender, settings.public_base_url, clock=clock)
    return AccessGateway(
        lifecycle=lifecycle,
        otp=otp,
        invitations=invitations,
        access_policy=settings.access_policy(),
        public_base_url=settings.public_base_url,
        clock=clock,
    )
