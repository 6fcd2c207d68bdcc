from datetime import datetime
from typing import List

from pydantic import Field

from .common import ApiModel


class RecipientIn(ApiModel):
    phone: str | None = Field(None, max_length=32)
    email: str | None = Field(None, max_length=255)
    user_id: str | None = Field(None, max_length=64)


class SendPasscodeRequest(ApiModel):
    file_id: str = Field(..., min_length=1, max_length=64)
    recipients: List[RecipientIn] = Field(..., min_length=1, max_length=50)


class SendPasscodeResult(ApiModel):
    phone: str | None = None
    email: str | None = None
    success: bool
    verification_id: str | None = None
    provider_message_id: str | None = None
    error: str | None = None
    detail: str | None = None
    remaining_minutes: int | None = None


class SendPasscodeResponse(ApiModel):
    results: List[SendPasscodeResult]
    sent: int
    failed: int


class VerifyPasscodeRequest(ApiModel):
    file_id: str = Field(..., min_length=1, max_length=64)
    phone: str = Field(..., min_length=1, max_length=32)
    otp: str = Field(..., min_length=6, max_length=6)


class VerifyPasscodeResponse(ApiModel):
    verified: bool = True
    verification_id: str
    verified_at: datetime
    already_verified: bool = False


class ChallengeDetail(ApiModel):
    phone: str
    verified: bool
    expired: bool
    attempts: int
    sent_at: datetime


class PasscodeStats(ApiModel):
    total: int
    verified: int
    expired: int
    locked: int
    pending: int
    details: List[ChallengeDetail]
