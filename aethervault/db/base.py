from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import models so Alembic can discover metadata
from aethervault.models import (  # noqa: E402,F401
    consumed_file,
    file_access_log,
    invitation,
    otp_challenge,
    shared_file,
    sms_rate_limit,
)
