import asyncio
import base64
from urllib.parse import urlsplit

import pytest
from fastapi.testclient import TestClient

from aethervault.api.deps import get_db, get_gateway
from aethervault.core.errors import RateLimited
from aethervault.core.security import create_access_token
from aethervault.main import app, share_error_handler
from aethervault.tests.conftest import OWNER_ID, PHONE

SALT = base64.b64encode(b"\x01" * 16).decode()
IV = base64.b64encode(b"\x02" * 12).decode()


@pytest.fixture()
def client(db, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth(user_id=OWNER_ID, email=None):
    return {"Authorization": f"Bearer {create_access_token(user_id, email)}"}


def create_file(client, **overrides):
    payload = {
        "encryptedFileName": "ZW5jcnlwdGVkLnBkZg==",
        "fileSize": 2048,
        "fileSalt": SALT,
        "fileIv": IV,
        "metadataIv": IV,
        "masterKeyHash": "a" * 64,
        "burnAfterRead": False,
        "expiryHours": 24,
    }
    payload.update(overrides)
    resp = client.post("/api/files", json=payload, headers=auth())
    assert resp.status_code == 201, resp.text
    return resp.json()


def verify_phone(client, sender, file_id):
    resp = client.post("/api/passcodes/send", json={"fileId": file_id, "recipients": [{"phone": "(555) 123-4567"}]})
    assert resp.status_code == 200
    assert resp.json()["sent"] == 1
    resp = client.post("/api/passcodes/verify", json={"fileId": file_id, "phone": PHONE, "otp": sender.last_code()})
    assert resp.status_code == 200, resp.text
    return resp.json()["verificationId"]


def test_health_is_not_cached(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}
    assert resp.headers["cache-control"] == "no-store"


def test_owner_routes_require_a_token(client):
    assert client.get("/api/files").status_code == 401
    assert client.get("/api/files", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_upload_and_burn_after_read_download(client, sender):
    created = create_file(client, burnAfterRead=True)
    assert created["uploadUrl"].startswith("https://vault.example.com/blobs/")
    file_id = created["fileId"]

    verification_id = verify_phone(client, sender, file_id)

    resp = client.post(f"/api/files/{file_id}/download", json={"phone": PHONE, "verificationId": verification_id})
    assert resp.status_code == 200, resp.text
    grant = resp.json()
    assert grant["fileSalt"] == SALT
    assert grant["fileIv"] == IV
    assert grant["masterKeyHash"] == "a" * 64
    assert grant["burnAfterRead"] is True
    assert resp.headers["cache-control"] == "no-store"

    resp = client.post(f"/api/files/{file_id}/record-download", json={"phone": PHONE, "verificationId": verification_id})
    assert resp.json() == {"fileId": file_id, "downloadCount": 1, "burned": True}

    resp = client.post(f"/api/files/{file_id}/download", json={"phone": PHONE, "verificationId": verification_id})
    assert resp.status_code == 410
    assert resp.json()["error"] == "consumed"


def test_download_without_verification(client, sender):
    file_id = create_file(client)["fileId"]
    resp = client.post(f"/api/files/{file_id}/download", json={"phone": PHONE, "verificationId": "guess"})
    assert resp.status_code == 403
    assert resp.json()["error"] == "unauthorized"


def test_bad_code_reports_attempts(client, sender):
    file_id = create_file(client)["fileId"]
    client.post("/api/passcodes/send", json={"fileId": file_id, "recipients": [{"phone": PHONE}]})
    code = sender.last_code()
    bad = "000000" if code != "000000" else "111111"

    resp = client.post("/api/passcodes/verify", json={"fileId": file_id, "phone": PHONE, "otp": bad})
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"] == "bad_code"
    assert body["attempts_remaining"] == 2
    assert body["max_attempts_reached"] is False


def test_malformed_otp_is_a_validation_error(client):
    resp = client.post("/api/passcodes/verify", json={"fileId": "f", "phone": PHONE, "otp": "12345"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


def test_bad_base64_salt(client):
    resp = client.post(
        "/api/files",
        json={"encryptedFileName": "x", "fileSize": 1, "fileSalt": "***"},
        headers=auth(),
    )
    assert resp.status_code == 400


def test_rate_limited_send_is_reported_per_recipient(client):
    file_id = create_file(client)["fileId"]
    for _ in range(3):
        client.post("/api/passcodes/send", json={"fileId": file_id, "recipients": [{"phone": PHONE}]})

    resp = client.post("/api/passcodes/send", json={"fileId": file_id, "recipients": [{"phone": PHONE}]})
    body = resp.json()
    assert body["failed"] == 1
    assert body["results"][0]["error"] == "rate_limited"
    assert body["results"][0]["remainingMinutes"] == 5


def test_rate_limited_error_sets_retry_after():
    resp = asyncio.run(share_error_handler(None, RateLimited(3)))
    assert resp.status_code == 429
    assert resp.headers["retry-after"] == "180"


def test_owner_views(client, sender):
    file_id = create_file(client)["fileId"]
    verify_phone(client, sender, file_id)

    listing = client.get("/api/files", headers=auth()).json()
    assert listing["total"] == 1
    assert listing["items"][0]["state"] == "active"

    stats = client.get(f"/api/passcodes/stats/{file_id}", headers=auth()).json()
    assert stats["total"] == 1
    assert stats["verified"] == 1

    link = client.get(f"/api/files/{file_id}/share-link", headers=auth()).json()
    assert link["shareUrl"].endswith(f"/share/{file_id}")
    assert link["qrPngBase64"]

    assert client.get(f"/api/passcodes/stats/{file_id}", headers=auth("intruder")).status_code == 403
    assert client.delete(f"/api/files/{file_id}", headers=auth("intruder")).status_code == 403


def test_complete_upload_and_revoke(client, blob_store):
    created = create_file(client, fileIv=None, metadataIv=None, masterKeyHash=None)
    file_id = created["fileId"]
    blob_store.put(f"{OWNER_ID}/{file_id}", b"ciphertext")

    resp = client.post(f"/api/files/{file_id}/complete", json={"fileIv": IV, "masterKeyHash": "b" * 64}, headers=auth())
    assert resp.status_code == 200, resp.text

    assert client.delete(f"/api/files/{file_id}", headers=auth()).status_code == 204
    assert client.get(f"/api/files/{file_id}/share-link", headers=auth()).status_code == 404


def test_invitation_routes(client, sender):
    file_id = create_file(client)["fileId"]
    resp = client.post(
        "/api/invitations",
        json={"fileId": file_id, "emails": ["bob@example.com", "bogus"], "senderName": "Ann"},
        headers=auth(),
    )
    assert resp.status_code == 200
    assert resp.json()["sent"] == 1
    token = sender.last_invitation_token()

    resp = client.get(f"/api/invitations/validate/{token}")
    assert resp.json()["recipientEmail"] == "bob@example.com"
    assert resp.json()["status"] == "pending"

    bob = auth("user-bob", "bob@example.com")
    assert len(client.get("/api/invitations/pending", headers=bob).json()["items"]) == 1

    resp = client.post("/api/invitations/accept", json={"token": token}, headers=bob)
    assert resp.json()["status"] == "accepted"

    resp = client.post("/api/invitations/accept", json={"token": token}, headers=bob)
    assert resp.status_code == 410
    assert resp.json()["error"] == "consumed"

    assert client.post("/api/invitations/accept-pending", headers=bob).json() == {"accepted": 0}
    assert client.get("/api/invitations/pending", headers=auth("no-email")).status_code == 400


def local_path(url):
    parts = urlsplit(url)
    return f"{parts.path}?{parts.query}"


def test_memory_blob_urls_round_trip(client, sender, clock):
    created = create_file(client, fileIv=None, metadataIv=None, masterKeyHash=None)
    file_id = created["fileId"]
    complete = {"fileIv": IV, "metadataIv": IV, "masterKeyHash": "a" * 64}

    resp = client.post(f"/api/files/{file_id}/complete", json=complete, headers=auth())
    assert resp.status_code == 400

    resp = client.put(local_path(created["uploadUrl"]), content=b"ciphertext")
    assert resp.status_code == 204
    resp = client.post(f"/api/files/{file_id}/complete", json=complete, headers=auth())
    assert resp.status_code == 200, resp.text

    verification_id = verify_phone(client, sender, file_id)
    grant = client.post(f"/api/files/{file_id}/download", json={"phone": PHONE, "verificationId": verification_id}).json()
    resp = client.get(local_path(grant["downloadUrl"]))
    assert resp.status_code == 200
    assert resp.content == b"ciphertext"


def test_memory_blob_urls_reject_tampering_and_expiry(client, clock):
    created = create_file(client)
    upload_path = local_path(created["uploadUrl"])

    tampered = upload_path.replace("signature=", "signature=0")
    assert client.put(tampered, content=b"x").status_code == 403
    # an upload URL does not grant reads
    assert client.get(upload_path).status_code == 403

    clock.advance(minutes=6)
    assert client.put(upload_path, content=b"x").status_code == 403
