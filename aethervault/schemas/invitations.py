from datetime import datetime
from typing import List

from pydantic import Field

from aethervault.models import InvitationStatus

from .common import ApiModel


class InviteRequest(ApiModel):
    file_id: str = Field(..., min_length=1, max_length=64)
    emails: List[str] = Field(..., min_length=1, max_length=50)
    sender_name: str | None = Field(None, max_length=255)


class InviteResult(ApiModel):
    email: str
    success: bool
    invitation_id: str | None = None
    error: str | None = None
    detail: str | None = None


class InviteResponse(ApiModel):
    results: List[InviteResult]
    sent: int
    failed: int


class InvitationOut(ApiModel):
    id: str
    file_id: str
    sender_id: str
    recipient_email: str
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    accepted_at: datetime | None = None


class AcceptInvitationRequest(ApiModel):
    token: str = Field(..., min_length=1, max_length=128)


class PendingInvitations(ApiModel):
    items: List[InvitationOut]


class AcceptPendingResponse(ApiModel):
    accepted: int
