import os
import re
from datetime import datetime, timedelta, timezone

os.environ.setdefault("AETHERVAULT_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("AETHERVAULT_PASSCODE_SECRET", "test-passcode-secret")
os.environ.setdefault("AETHERVAULT_DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from aethervault.core.config import AccessPolicy, InvitationPolicy, OtpPolicy, RateLimitPolicy, UploadPolicy
from aethervault.core.time import utcnow
from aethervault.db.base import Base
from aethervault.services.access_gateway import AccessGateway
from aethervault.services.blob_store import BlobStoreError, MemoryBlobStore
from aethervault.services.file_lifecycle_service import FileLifecycleManager
from aethervault.services.invitation_service import InvitationEngine
from aethervault.services.notification_service import DeliveryResult, NotificationSender
from aethervault.services.otp_service import OtpEngine
from aethervault.services.rate_limiter import SmsRateLimiter

PASSCODE_SECRET = "test-passcode-secret"
PUBLIC_BASE_URL = "https://vault.example.com"
OWNER_ID = "owner-1"
PHONE = "+15551234567"


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingBlobStore(MemoryBlobStore):
    def __init__(self, clock=utcnow):
        super().__init__(PUBLIC_BASE_URL, "blob-secret", clock=clock)
        self.deleted = []
        self.fail_put = False
        self.fail_get = False
        self.fail_delete = False

    def put_url(self, key, ttl_seconds):
        if self.fail_put:
            raise BlobStoreError("storage offline")
        return super().put_url(key, ttl_seconds)

    def get_url(self, key, ttl_seconds):
        if self.fail_get:
            raise BlobStoreError("storage offline")
        return super().get_url(key, ttl_seconds)

    def delete(self, key):
        self.deleted.append(key)
        if self.fail_delete:
            raise BlobStoreError("storage offline")
        super().delete(key)


class RecordingSender(NotificationSender):
    def __init__(self):
        self.sms = []
        self.emails = []
        self.fail_sms = False
        self.fail_email = False

    def send_sms(self, phone, body):
        self.sms.append((phone, body))
        if self.fail_sms:
            return DeliveryResult(ok=False, error="carrier rejected")
        return DeliveryResult(ok=True, provider_message_id=f"SM{len(self.sms)}")

    def send_email(self, address, subject, body):
        self.emails.append((address, subject, body))
        if self.fail_email:
            return DeliveryResult(ok=False, error="mailbox unavailable")
        return DeliveryResult(ok=True, provider_message_id=f"<{len(self.emails)}@test>")

    def last_code(self, phone=PHONE) -> str:
        body = [b for p, b in self.sms if p == phone][-1]
        return re.search(r"code: (\d{6})", body).group(1)

    def last_invitation_token(self) -> str:
        body = self.emails[-1][2]
        return re.search(r"invitation=([0-9a-f]+)", body).group(1)


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def blob_store(clock):
    return RecordingBlobStore(clock)


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def lifecycle(blob_store, clock):
    return FileLifecycleManager(blob_store, UploadPolicy(), clock=clock)


@pytest.fixture()
def rate_limiter(clock):
    return SmsRateLimiter(RateLimitPolicy(), clock=clock)


@pytest.fixture()
def otp(rate_limiter, sender, clock):
    return OtpEngine(OtpPolicy(), rate_limiter, sender, PASSCODE_SECRET, clock=clock)


@pytest.fixture()
def invitations(sender, clock):
    return InvitationEngine(InvitationPolicy(), sender, PUBLIC_BASE_URL, clock=clock)


@pytest.fixture()
def gateway(lifecycle, otp, invitations, clock):
    return AccessGateway(
        lifecycle=lifecycle,
        otp=otp,
        invitations=invitations,
        access_policy=AccessPolicy(),
        public_base_url=PUBLIC_BASE_URL,
        clock=clock,
    )


@pytest.fixture()
def upload(db, lifecycle):
    """Create a file owned by OWNER_ID; keyword arguments override the defaults."""

    def _upload(**overrides):
        fields = {
            "encrypted_file_name": "ZW5jcnlwdGVkLnBkZg==",
            "file_size": 2048,
            "file_salt": b"\x01" * 16,
            "file_iv": b"\x02" * 12,
            "metadata_iv": b"\x03" * 12,
            "master_key_hash": "a" * 64,
        }
        fields.update(overrides)
        owner_id = fields.pop("owner_id", OWNER_ID)
        return lifecycle.begin_upload(db, owner_id, **fields)

    return _upload
