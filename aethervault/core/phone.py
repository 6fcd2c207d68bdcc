import re

from .errors import ValidationError

_SEPARATORS = re.compile(r"[\s\-\.\(\)]")
_DIGITS = re.compile(r"^\d+$")


def normalize_phone(raw: str | None) -> str:
    """
    Normalize user input to E.164.

    A leading ``+`` keeps the caller's country code. Bare 10-digit numbers
    are read as North-American and get ``+1``; 11 digits starting with 1
    just get the ``+``. Anything else is rejected.
    """
    if raw is None or not str(raw).strip():
        raise ValidationError("Phone number is required")

    cleaned = _SEPARATORS.sub("", str(raw).strip())
    has_plus = cleaned.startswith("+")
    digits = cleaned[1:] if has_plus else cleaned

    if not digits or not _DIGITS.match(digits):
        raise ValidationError(f"Invalid phone number: {raw!r}")

    if has_plus:
        if digits.startswith("0") or not 8 <= len(digits) <= 15:
            raise ValidationError(f"Invalid phone number: {raw!r}")
        return f"+{digits}"

    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    raise ValidationError(f"Phone number must include a country code: {raw!r}")


def mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "***"
    return f"{phone[:2]}***{phone[-4:]}"
