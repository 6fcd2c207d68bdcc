"""
Key-addressed blob storage with time-boxed pre-signed URLs.

The vault never streams file bytes itself: clients PUT ciphertext to an
upload URL and GET it back from a download URL. Backends only mint URLs and
delete objects.
"""
import abc
import hmac
import logging
from typing import Dict
from urllib.parse import quote, urlencode

from aethervault.core.config import Settings
from aethervault.core.security import sign_value
from aethervault.core.time import Clock, utcnow

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """Raised by any backend when the storage service fails."""


class BlobStore(abc.ABC):
    @abc.abstractmethod
    def put_url(self, key: str, ttl_seconds: int) -> str:
        ...

    @abc.abstractmethod
    def get_url(self, key: str, ttl_seconds: int) -> str:
        ...

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abc.abstractmethod
    def exists(self, key: str) -> bool:
        ...


class MemoryBlobStore(BlobStore):
    """
    In-process backend for local development and tests.

    URLs are HMAC-signed and carry their own expiry; they are redeemed by
    the ``/blobs`` routes, which the app mounts only for this backend.
    """

    def __init__(self, base_url: str, signing_secret: str, clock: Clock = utcnow):
        if not signing_secret:
            raise ValueError("A signing secret is required")
        self.base_url = base_url.rstrip("/")
        self.signing_secret = signing_secret
        self.clock = clock
        self.objects: Dict[str, bytes] = {}

    def _signature(self, method: str, key: str, expires: int) -> str:
        return sign_value(f"{method}:{key}:{expires}", self.signing_secret)

    def _signed_url(self, method: str, key: str, ttl_seconds: int) -> str:
        expires = int(self.clock().timestamp()) + ttl_seconds
        signature = self._signature(method, key, expires)
        query = urlencode({"method": method, "expires": expires, "signature": signature})
        return f"{self.base_url}/blobs/{quote(key)}?{query}"

    def put_url(self, key: str, ttl_seconds: int) -> str:
        return self._signed_url("PUT", key, ttl_seconds)

    def get_url(self, key: str, ttl_seconds: int) -> str:
        return self._signed_url("GET", key, ttl_seconds)

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self.objects

    def verify_signature(self, method: str, key: str, expires: int, signature: str) -> bool:
        if expires < int(self.clock().timestamp()):
            return False
        expected = self._signature(method, key, expires)
        return hmac.compare_digest(expected.encode(), (signature or "").encode())

    def put(self, key: str, data: bytes) -> None:
        self.objects[key] = data

    def get(self, key: str) -> bytes | None:
        return self.objects.get(key)


def build_blob_store(settings: Settings, clock: Clock = utcnow) -> BlobStore:
    backend = settings.blob_backend.lower()
    if backend == "s3":
        from .s3_blob_store import S3BlobStore

        return S3BlobStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    if backend == "memory":
        logger.warning("Using in-memory blob store; uploaded ciphertext will not persist")
        return MemoryBlobStore(settings.blob_base_url, settings.passcode_secret or settings.jwt_secret, clock=clock)
    raise ValueError(f"Unknown blob backend: {settings.blob_backend}")
