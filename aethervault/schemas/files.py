from datetime import datetime
from typing import List

from pydantic import Field, field_validator

from aethervault.models import AccessEvent, FileState

from .common import ApiModel, decode_b64, encode_b64


class UploadRequest(ApiModel):
    encrypted_file_name: str = Field(..., min_length=1, max_length=1024)
    file_size: int = Field(..., gt=0)
    file_salt: bytes = Field(..., description="Base64 key-derivation salt")
    burn_after_read: bool = False
    expiry_hours: int = Field(24, ge=0)
    file_iv: bytes | None = None
    metadata_iv: bytes | None = None
    master_key_hash: str | None = Field(None, max_length=255)

    @field_validator("file_salt", "file_iv", "metadata_iv", mode="before")
    @classmethod
    def _decode(cls, value, info):
        return decode_b64(value, info.field_name)


class UploadResponse(ApiModel):
    file_id: str
    blob_key: str
    upload_url: str
    expires_at: datetime | None = None


class CompleteUploadRequest(ApiModel):
    file_iv: bytes | None = None
    metadata_iv: bytes | None = None
    master_key_hash: str | None = Field(None, max_length=255)

    @field_validator("file_iv", "metadata_iv", mode="before")
    @classmethod
    def _decode(cls, value, info):
        return decode_b64(value, info.field_name)


class FileSummary(ApiModel):
    id: str
    encrypted_file_name: str
    file_size: int
    burn_after_read: bool
    download_count: int
    expires_at: datetime | None = None
    created_at: datetime
    state: FileState


class FileList(ApiModel):
    items: List[FileSummary]
    total: int


class VerificationProof(ApiModel):
    phone: str = Field(..., min_length=1, max_length=32)
    verification_id: str = Field(..., min_length=1, max_length=64)


class DownloadResponse(ApiModel):
    file_id: str
    verification_id: str
    file_size: int
    file_salt: str
    file_iv: str | None = None
    metadata_iv: str | None = None
    master_key_hash: str | None = None
    burn_after_read: bool
    download_count: int
    download_url: str
    url_expires_at: datetime

    @field_validator("file_salt", "file_iv", "metadata_iv", mode="before")
    @classmethod
    def _encode(cls, value):
        return encode_b64(value) if isinstance(value, bytes) else value


class RecordDownloadResponse(ApiModel):
    file_id: str
    download_count: int
    burned: bool


class ShareLinkResponse(ApiModel):
    file_id: str
    share_url: str
    qr_png_base64: str


class AccessLogEntry(ApiModel):
    id: str
    event: AccessEvent
    recipient_phone: str | None = None
    verification_id: str | None = None
    download_count: int | None = None
    at_utc: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class AccessHistory(ApiModel):
    items: List[AccessLogEntry]
