import smtplib
from urllib.parse import parse_qs

import boto3
import httpx
import pytest
from botocore.stub import Stubber

from aethervault.core.config import Settings
from aethervault.services import notification_service
from aethervault.services.blob_store import BlobStoreError, MemoryBlobStore, build_blob_store
from aethervault.services.notification_service import (
    LiveNotificationSender,
    LoggingNotificationSender,
    build_notification_sender,
)
from aethervault.services.s3_blob_store import S3BlobStore


@pytest.fixture()
def s3():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test-key",
        aws_secret_access_key="test-secret",
    )
    return S3BlobStore("vault-bucket", client=client), client


def test_s3_presigned_urls(s3):
    store, _ = s3
    put = store.put_url("owner-1/file-1", 300)
    get = store.get_url("owner-1/file-1", 3600)

    for url in (put, get):
        assert "vault-bucket" in url
        assert "owner-1/file-1" in url
        assert "Signature=" in url
    assert put != get


def test_s3_delete_and_exists(s3):
    store, client = s3
    with Stubber(client) as stub:
        stub.add_response("delete_object", {}, {"Bucket": "vault-bucket", "Key": "k"})
        stub.add_response("head_object", {}, {"Bucket": "vault-bucket", "Key": "k"})
        stub.add_client_error("head_object", service_error_code="404", http_status_code=404)
        stub.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)

        store.delete("k")
        assert store.exists("k") is True
        assert store.exists("k") is False
        with pytest.raises(BlobStoreError):
            store.delete("k")


def test_s3_requires_bucket():
    with pytest.raises(ValueError):
        S3BlobStore("")


def test_memory_store_signs_urls():
    store = MemoryBlobStore("https://vault.example.com/", "secret")
    url = store.put_url("owner/file", 60)
    assert url.startswith("https://vault.example.com/blobs/owner/file?")
    assert "signature=" in url
    assert url != MemoryBlobStore("https://vault.example.com", "other").put_url("owner/file", 60)


def test_memory_store_signatures_expire_with_the_clock(clock):
    store = MemoryBlobStore("https://vault.example.com", "secret", clock=clock)
    query = parse_qs(store.get_url("owner/file", 60).split("?", 1)[1])
    expires = int(query["expires"][0])
    signature = query["signature"][0]

    assert expires == int(clock().timestamp()) + 60
    assert store.verify_signature("GET", "owner/file", expires, signature)
    assert not store.verify_signature("PUT", "owner/file", expires, signature)
    assert not store.verify_signature("GET", "owner/other", expires, signature)
    assert not store.verify_signature("GET", "owner/file", expires + 1, signature)

    clock.advance(seconds=61)
    assert not store.verify_signature("GET", "owner/file", expires, signature)


def test_backend_selection():
    assert isinstance(build_blob_store(Settings(blob_backend="memory")), MemoryBlobStore)
    assert isinstance(build_notification_sender(Settings(notification_backend="log")), LoggingNotificationSender)
    with pytest.raises(ValueError):
        build_blob_store(Settings(blob_backend="ftp"))
    with pytest.raises(ValueError):
        build_notification_sender(Settings(notification_backend="pigeon"))


def twilio_settings(**overrides):
    values = {
        "notification_backend": "live",
        "twilio_account_sid": "AC123",
        "twilio_auth_token": "token",
        "twilio_messaging_service_sid": "MG456",
    }
    values.update(overrides)
    return Settings(**values)


def test_twilio_sms():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(201, json={"sid": "SM789"})

    sender = LiveNotificationSender(twilio_settings(), http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    result = sender.send_sms("+15551234567", "code: 123456")

    assert result.ok
    assert result.provider_message_id == "SM789"
    assert seen["path"] == "/2010-04-01/Accounts/AC123/Messages.json"
    assert seen["form"]["To"] == ["+15551234567"]
    assert seen["form"]["MessagingServiceSid"] == ["MG456"]


def test_twilio_rejection_is_reported():
    def handler(request):
        return httpx.Response(400, json={"message": "The 'To' number is not valid"})

    sender = LiveNotificationSender(twilio_settings(), http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    result = sender.send_sms("+15551234567", "body")
    assert not result.ok
    assert "not valid" in result.error


def test_twilio_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    sender = LiveNotificationSender(twilio_settings(), http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    result = sender.send_sms("+15551234567", "body")
    assert not result.ok
    assert result.error == "SMS gateway unreachable"


def test_twilio_not_configured():
    result = LiveNotificationSender(twilio_settings(twilio_auth_token="")).send_sms("+15551234567", "body")
    assert not result.ok


class FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def starttls(self, context=None):
        if FakeSMTP.fail:
            raise smtplib.SMTPException("TLS not supported")

    def login(self, user, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


def test_smtp_email(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr(notification_service.smtplib, "SMTP", FakeSMTP)
    sender = LiveNotificationSender(Settings(smtp_user="u", smtp_password="p"))

    assert sender.send_email("bob@example.com", "Hello", "body").ok
    assert FakeSMTP.sent[0]["To"] == "bob@example.com"

    FakeSMTP.fail = True
    result = sender.send_email("bob@example.com", "Hello", "body")
    assert not result.ok
    assert result.error == "Email delivery failed"
