import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Any, Dict

import jwt

from .config import get_settings
from .time import utcnow

ALGORITHM = "HS256"


def create_token(payload: Dict[str, Any], expires_minutes: int) -> str:
    settings = get_settings()
    now = utcnow()
    expire = now + timedelta(minutes=expires_minutes)
    claims = {
        **payload,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        issuer=settings.jwt_issuer,
        algorithms=[ALGORITHM],
        options={"require": ["iss", "iat", "exp", "sub"]},
    )


def create_access_token(user_id: str, email: str | None = None) -> str:
    settings = get_settings()
    payload = {"sub": user_id, "type": "access"}
    if email:
        payload["email"] = email
    return create_token(payload, settings.access_token_exp_minutes)


def generate_passcode(digits: int = 6) -> str:
    # uniform over the whole code space, leading zeros kept
    return str(secrets.randbelow(10**digits)).zfill(digits)


def hash_passcode(code: str, secret: str, salt: str) -> str:
    """Keyed hash of a passcode; ``salt`` binds it to one challenge row."""
    message = f"{salt}:{code}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def passcode_matches(code: str, expected_hash: str, secret: str, salt: str) -> bool:
    candidate = hash_passcode(code, secret, salt)
    return hmac.compare_digest(candidate.encode("ascii"), expected_hash.encode("ascii"))


def generate_invitation_token(num_bytes: int = 32) -> str:
    return secrets.token_hex(num_bytes)


def sign_value(value: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()
