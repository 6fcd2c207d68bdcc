import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from aethervault.api.deps import Principal, get_current_user, get_db, get_gateway, require_email
from aethervault.schemas.invitations import (
    AcceptInvitationRequest,
    AcceptPendingResponse,
    InvitationOut,
    InviteRequest,
    InviteResponse,
    InviteResult,
    PendingInvitations,
)
from aethervault.services.access_gateway import AccessGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["invitations"])


@router.post("", response_model=InviteResponse)
def send_invitations(
    payload: InviteRequest,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    results = [
        InviteResult.model_validate(r)
        for r in gateway.send_invitations(db, payload.file_id, user.user_id, payload.emails, payload.sender_name)
    ]
    sent = sum(1 for r in results if r.success)
    return InviteResponse(results=results, sent=sent, failed=len(results) - sent)


@router.get("/validate/{token}", response_model=InvitationOut)
def validate_invitation(
    token: str,
    db: Session = Depends(get_db),
    gateway: AccessGateway = Depends(get_gateway),
):
    return InvitationOut.model_validate(gateway.validate_invitation(db, token))


@router.post("/accept", response_model=InvitationOut)
def accept_invitation(
    payload: AcceptInvitationRequest,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    invitation = gateway.accept_invitation(db, payload.token, user.user_id)
    logger.info(f"User {user.user_id} accepted invitation {invitation.id}")
    return InvitationOut.model_validate(invitation)


@router.get("/pending", response_model=PendingInvitations)
def pending_invitations(
    db: Session = Depends(get_db),
    user: Principal = Depends(require_email),
    gateway: AccessGateway = Depends(get_gateway),
):
    invitations = gateway.pending_invitations(db, user.email)
    return PendingInvitations(items=[InvitationOut.model_validate(i) for i in invitations])


@router.post("/accept-pending", response_model=AcceptPendingResponse)
def accept_pending_invitations(
    db: Session = Depends(get_db),
    user: Principal = Depends(require_email),
    gateway: AccessGateway = Depends(get_gateway),
):
    return AcceptPendingResponse(accepted=gateway.accept_pending_invitations(db, user.email, user.user_id))
