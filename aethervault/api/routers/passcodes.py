import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from aethervault.api.deps import Principal, get_current_user, get_db, get_gateway
from aethervault.schemas.passcodes import (
    PasscodeStats,
    SendPasscodeRequest,
    SendPasscodeResponse,
    SendPasscodeResult,
    VerifyPasscodeRequest,
    VerifyPasscodeResponse,
)
from aethervault.services.access_gateway import AccessGateway, Recipient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/passcodes", tags=["passcodes"])


@router.post("/send", response_model=SendPasscodeResponse)
def send_passcode(
    payload: SendPasscodeRequest,
    db: Session = Depends(get_db),
    gateway: AccessGateway = Depends(get_gateway),
):
    recipients = [Recipient(phone=r.phone, email=r.email, user_id=r.user_id) for r in payload.recipients]
    results = [SendPasscodeResult.model_validate(r) for r in gateway.send_passcode(db, payload.file_id, recipients)]
    sent = sum(1 for r in results if r.success)
    return SendPasscodeResponse(results=results, sent=sent, failed=len(results) - sent)


@router.post("/verify", response_model=VerifyPasscodeResponse)
def verify_passcode(
    payload: VerifyPasscodeRequest,
    db: Session = Depends(get_db),
    gateway: AccessGateway = Depends(get_gateway),
):
    result = gateway.verify_passcode(db, payload.file_id, payload.phone, payload.otp)
    return VerifyPasscodeResponse(
        verification_id=result.challenge_id,
        verified_at=result.verified_at,
        already_verified=result.already_verified,
    )


@router.get("/stats/{file_id}", response_model=PasscodeStats)
def passcode_stats(
    file_id: str,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    return PasscodeStats.model_validate(gateway.passcode_stats(db, file_id, user.user_id))
