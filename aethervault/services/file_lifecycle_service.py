"""
Lifecycle of shared files: ACTIVE -> EXPIRED | CONSUMED -> deleted.

Expiry is evaluated lazily on every access; nothing here sweeps in the
background. Consumption happens on the first recorded download of a
burn-after-read file.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aethervault.core.config import UploadPolicy
from aethervault.core.errors import (
    Consumed,
    Expired,
    NotFound,
    StorageError,
    Unauthorized,
    ValidationError,
)
from aethervault.core.time import Clock, utcnow
from aethervault.models import ConsumedFile, FileState, SharedFile

from .blob_store import BlobStore, BlobStoreError

logger = logging.getLogger(__name__)


@dataclass
class UploadTicket:
    file_id: str
    blob_key: str
    upload_url: str
    expires_at: datetime | None


@dataclass
class DownloadRecord:
    file_id: str
    download_count: int
    burned: bool


class FileLifecycleManager:

    def __init__(self, blob_store: BlobStore, policy: UploadPolicy, clock: Clock = utcnow):
        self.blob_store = blob_store
        self.policy = policy
        self.clock = clock

    def begin_upload(
        self,
        db: Session,
        owner_id: str,
        encrypted_file_name: str,
        file_size: int,
        file_salt: bytes,
        burn_after_read: bool = False,
        expiry_hours: int = 24,
        file_iv: bytes | None = None,
        metadata_iv: bytes | None = None,
        master_key_hash: str | None = None,
    ) -> UploadTicket:
        """
        Persist the file record and hand back a short-lived upload URL.

        The row is flushed before the URL is minted and committed before it
        is returned, so a client never holds an upload target without
        metadata behind it.
        """
        missing = []
        if not owner_id:
            missing.append("owner_id")
        if not encrypted_file_name:
            missing.append("encrypted_file_name")
        if not file_salt:
            missing.append("file_salt")
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size <= 0:
            raise ValidationError("file_size must be a positive integer")
        if isinstance(expiry_hours, bool) or not isinstance(expiry_hours, int) or expiry_hours < 0:
            raise ValidationError("expiry_hours must be zero or a positive integer")
        if expiry_hours > self.policy.max_expiry_hours:
            raise ValidationError(f"expiry_hours may not exceed {self.policy.max_expiry_hours}")

        now = self.clock()
        file_id = str(uuid.uuid4())
        blob_key = f"{owner_id}/{file_id}"
        expires_at = now + timedelta(hours=expiry_hours) if expiry_hours > 0 else None

        record = SharedFile(
            id=file_id,
            owner_id=owner_id,
            blob_key=blob_key,
            encrypted_file_name=encrypted_file_name,
            file_size=file_size,
            file_salt=file_salt,
            file_iv=file_iv,
            metadata_iv=metadata_iv,
            master_key_hash=master_key_hash,
            expires_at=expires_at,
            burn_after_read=bool(burn_after_read),
            download_count=0,
            created_at=now,
        )
        try:
            db.add(record)
            db.flush()
            upload_url = self.blob_store.put_url(blob_key, self.policy.upload_url_ttl_seconds)
            db.commit()
        except BlobStoreError as e:
            db.rollback()
            logger.error(f"Upload URL issuance failed for owner {owner_id}: {e}")
            raise StorageError("Failed to prepare upload") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create file record for owner {owner_id}: {e}", exc_info=True)
            raise StorageError("Failed to create file record") from e

        logger.info(
            f"Prepared upload {file_id} for owner {owner_id} "
            f"(size={file_size}, burn_after_read={bool(burn_after_read)}, expires_at={expires_at})"
        )
        return UploadTicket(
            file_id=file_id,
            blob_key=blob_key,
            upload_url=upload_url,
            expires_at=expires_at,
        )

    def complete_upload(
        self,
        db: Session,
        file_id: str,
        owner_id: str,
        file_iv: bytes | None = None,
        metadata_iv: bytes | None = None,
        master_key_hash: str | None = None,
    ) -> SharedFile:
        """Attach the crypto metadata the client only knows after encrypting."""
        record = self.get_owned(db, file_id, owner_id)
        self._raise_for_state(record)
        if record.download_count > 0:
            raise ValidationError("File metadata is frozen once the file has been downloaded")
        if not any([file_iv, metadata_iv, master_key_hash]):
            raise ValidationError("Nothing to update")

        try:
            uploaded = self.blob_store.exists(record.blob_key)
        except BlobStoreError as e:
            logger.error(f"Could not confirm upload of {file_id}: {e}")
            raise StorageError("Failed to confirm upload") from e
        if not uploaded:
            raise ValidationError("Encrypted file has not been uploaded yet")

        if file_iv:
            record.file_iv = file_iv
        if metadata_iv:
            record.metadata_iv = metadata_iv
        if master_key_hash:
            record.master_key_hash = master_key_hash
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info(f"Completed upload {file_id}")
        return record

    def get(self, db: Session, file_id: str) -> SharedFile:
        record = db.query(SharedFile).filter(SharedFile.id == file_id).first()
        if not record:
            self._raise_missing(db, file_id)
        return record

    def _raise_missing(self, db: Session, file_id: str) -> None:
        if db.get(ConsumedFile, file_id) is not None:
            raise Consumed("File has been consumed")
        raise NotFound("File not found")

    def get_owned(self, db: Session, file_id: str, owner_id: str) -> SharedFile:
        # no tombstone lookup: a burned file is simply gone for owner operations
        record = db.query(SharedFile).filter(SharedFile.id == file_id).first()
        if not record:
            raise NotFound("File not found")
        if record.owner_id != owner_id:
            raise Unauthorized("You do not own this file")
        return record

    def _raise_for_state(self, record: SharedFile) -> None:
        state = record.state(self.clock())
        if state == FileState.EXPIRED:
            raise Expired("File has expired")
        if state == FileState.CONSUMED:
            raise Consumed("File has been consumed")

    def get_download_gate(self, db: Session, file_id: str) -> SharedFile:
        """
        The single authority on downloadability. Call it right before
        releasing metadata or minting a download URL; an earlier passcode
        check says nothing about the file's state now.
        """
        record = self.get(db, file_id)
        self._raise_for_state(record)
        return record

    def record_download(self, db: Session, file_id: str) -> DownloadRecord:
        """
        Count a completed download and burn the file if it is burn-after-read.

        The increment runs under a row lock as ``download_count + 1``. The
        burn is claimed by setting ``burned_at`` in the same transaction, so
        concurrent callers each count but only one deletes. The deleted row is
        replaced by a ``ConsumedFile`` tombstone so later lookups report
        ``Consumed`` rather than ``NotFound``.
        """
        record = (
            db.query(SharedFile)
            .filter(SharedFile.id == file_id)
            .with_for_update()
            .first()
        )
        if not record:
            db.rollback()
            self._raise_missing(db, file_id)

        record.download_count = SharedFile.download_count + 1
        db.flush()
        db.refresh(record)

        claimed_burn = False
        if record.burn_after_read and record.burned_at is None:
            record.burned_at = self.clock()
            claimed_burn = True
        download_count = record.download_count
        burn_after_read = bool(record.burn_after_read)
        blob_key = record.blob_key
        owner_id = record.owner_id
        burned_at = record.burned_at
        db.commit()

        logger.info(f"Recorded download #{download_count} of file {file_id}")

        if claimed_burn:
            self._delete_blob(blob_key, file_id, reason="burn-after-read")
            db.add(ConsumedFile(file_id=file_id, owner_id=owner_id, consumed_at=burned_at))
            db.query(SharedFile).filter(SharedFile.id == file_id).delete(synchronize_session=False)
            db.commit()
            logger.info(f"Burned file {file_id} after first download")

        return DownloadRecord(file_id=file_id, download_count=download_count, burned=burn_after_read)

    def revoke(self, db: Session, file_id: str, requester_id: str) -> None:
        record = self.get_owned(db, file_id, requester_id)
        blob_key = record.blob_key

        # storage may already be gone; the record is deleted regardless
        self._delete_blob(blob_key, file_id, reason="revoke")
        db.query(SharedFile).filter(SharedFile.id == file_id).delete(synchronize_session=False)
        db.commit()
        logger.info(f"File {file_id} revoked by owner {requester_id}")

    def list_for_owner(self, db: Session, owner_id: str) -> List[tuple[SharedFile, FileState]]:
        now = self.clock()
        files = (
            db.query(SharedFile)
            .filter(SharedFile.owner_id == owner_id)
            .order_by(SharedFile.created_at.desc())
            .all()
        )
        return [(f, f.state(now)) for f in files]

    def download_url(self, record: SharedFile, ttl_seconds: int) -> str:
        try:
            return self.blob_store.get_url(record.blob_key, ttl_seconds)
        except BlobStoreError as e:
            logger.error(f"Download URL issuance failed for {record.id}: {e}")
            raise StorageError("Failed to prepare download") from e

    def _delete_blob(self, blob_key: str, file_id: str, reason: str) -> None:
        try:
            self.blob_store.delete(blob_key)
        except BlobStoreError as e:
            logger.error(f"Blob delete failed for file {file_id} ({reason}): {e}")
