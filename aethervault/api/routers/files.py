"""Owner file management and the verified download path."""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from aethervault.api.deps import Principal, get_current_user, get_db, get_gateway, get_request_context
from aethervault.schemas.files import (
    AccessHistory,
    AccessLogEntry,
    CompleteUploadRequest,
    DownloadResponse,
    FileList,
    FileSummary,
    RecordDownloadResponse,
    ShareLinkResponse,
    UploadRequest,
    UploadResponse,
    VerificationProof,
)
from aethervault.services.access_gateway import AccessGateway, RequestContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def initiate_upload(
    payload: UploadRequest,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    ticket = gateway.initiate_upload(
        db,
        user.user_id,
        encrypted_file_name=payload.encrypted_file_name,
        file_size=payload.file_size,
        file_salt=payload.file_salt,
        burn_after_read=payload.burn_after_read,
        expiry_hours=payload.expiry_hours,
        file_iv=payload.file_iv,
        metadata_iv=payload.metadata_iv,
        master_key_hash=payload.master_key_hash,
    )
    return UploadResponse.model_validate(ticket)


@router.get("", response_model=FileList)
def list_files(
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    owned = gateway.list_files(db, user.user_id)
    items = [
        FileSummary(
            id=o.record.id,
            encrypted_file_name=o.record.encrypted_file_name,
            file_size=o.record.file_size,
            burn_after_read=o.record.burn_after_read,
            download_count=o.record.download_count,
            expires_at=o.record.expires_at,
            created_at=o.record.created_at,
            state=o.state,
        )
        for o in owned
    ]
    return FileList(items=items, total=len(items))


@router.post("/{file_id}/complete", response_model=FileSummary)
def complete_upload(
    file_id: str,
    payload: CompleteUploadRequest,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    record = gateway.complete_upload(
        db,
        file_id,
        user.user_id,
        file_iv=payload.file_iv,
        metadata_iv=payload.metadata_iv,
        master_key_hash=payload.master_key_hash,
    )
    return FileSummary(
        id=record.id,
        encrypted_file_name=record.encrypted_file_name,
        file_size=record.file_size,
        burn_after_read=record.burn_after_read,
        download_count=record.download_count,
        expires_at=record.expires_at,
        created_at=record.created_at,
        state=record.state(gateway.clock()),
    )


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_file(
    file_id: str,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    gateway.revoke_file(db, file_id, user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{file_id}/share-link", response_model=ShareLinkResponse)
def share_link(
    file_id: str,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    return ShareLinkResponse.model_validate(gateway.share_link(db, file_id, user.user_id))


@router.get("/{file_id}/access-history", response_model=AccessHistory)
def access_history(
    file_id: str,
    db: Session = Depends(get_db),
    user: Principal = Depends(get_current_user),
    gateway: AccessGateway = Depends(get_gateway),
):
    entries = gateway.access_history(db, file_id, user.user_id)
    return AccessHistory(items=[AccessLogEntry.model_validate(e) for e in entries])


@router.post("/{file_id}/download", response_model=DownloadResponse)
def fetch_for_download(
    file_id: str,
    proof: VerificationProof,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    gateway: AccessGateway = Depends(get_gateway),
):
    grant = gateway.fetch_file_metadata_for_download(db, file_id, proof.phone, proof.verification_id, context)
    return DownloadResponse.model_validate(grant)


@router.post("/{file_id}/record-download", response_model=RecordDownloadResponse)
def record_download(
    file_id: str,
    proof: VerificationProof,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    gateway: AccessGateway = Depends(get_gateway),
):
    record = gateway.record_download(db, file_id, proof.phone, proof.verification_id, context)
    return RecordDownloadResponse.model_validate(record)
