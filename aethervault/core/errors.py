"""
Error taxonomy for the share verification engine.

Every failure a caller can observe is one of these, each with a stable
``code`` so clients can tell "try again" apart from "request a new code"
and "this link is dead".
"""
from typing import Any, Dict

from fastapi import status


class ShareError(Exception):
    code = "share_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def extra(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.detail, **self.extra()}


class ValidationError(ShareError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class Unauthorized(ShareError):
    code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not allowed"


class NotFound(ShareError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Expired(ShareError):
    code = "expired"
    status_code = status.HTTP_410_GONE
    default_detail = "Expired"


class Consumed(ShareError):
    code = "consumed"
    status_code = status.HTTP_410_GONE
    default_detail = "Already consumed"


class RateLimited(ShareError):
    code = "rate_limited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests"

    def __init__(self, remaining_minutes: int, detail: str | None = None):
        self.remaining_minutes = remaining_minutes
        super().__init__(detail or f"Rate limit exceeded. Try again in {remaining_minutes} minutes.")

    def extra(self) -> Dict[str, Any]:
        return {"remaining_minutes": self.remaining_minutes}


class MaxAttemptsReached(ShareError):
    code = "max_attempts_reached"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Maximum verification attempts reached. Request a new code."


class BadCode(ShareError):
    code = "bad_code"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        self.max_attempts_reached = attempts_remaining <= 0
        super().__init__(f"Invalid passcode. {attempts_remaining} attempts remaining.")

    def extra(self) -> Dict[str, Any]:
        return {
            "attempts_remaining": self.attempts_remaining,
            "max_attempts_reached": self.max_attempts_reached,
        }


class StorageError(ShareError):
    code = "storage_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Storage backend unavailable"


class DeliveryError(ShareError):
    code = "delivery_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Message delivery failed"
