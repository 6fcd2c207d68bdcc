from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from aethervault.core.time import utcnow
from aethervault.models import AccessEvent, FileAccessLog


def log_access(
    db: Session,
    file_id: str,
    event: AccessEvent,
    recipient_phone: str | None = None,
    verification_id: str | None = None,
    download_count: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    at_utc: datetime | None = None,
) -> FileAccessLog:
    entry = FileAccessLog(
        file_id=file_id,
        event=event,
        recipient_phone=recipient_phone,
        verification_id=verification_id,
        download_count=download_count,
        at_utc=at_utc or utcnow(),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    db.commit()
    return entry


def access_history(db: Session, file_id: str, limit: int = 100) -> List[FileAccessLog]:
    return (
        db.query(FileAccessLog)
        .filter(FileAccessLog.file_id == file_id)
        .order_by(FileAccessLog.at_utc.desc())
        .limit(limit)
        .all()
    )
