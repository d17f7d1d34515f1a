"""Input normalization for the passcode flow."""

from __future__ import annotations

from email_validator import EmailNotValidError, validate_email

from otp_auth.errors import ValidationError


def normalize_email(email: str | None) -> str:
    """Trim and lower-case *email*, rejecting missing or malformed input.

    Two spellings of the same address (``" User@Example.com "`` and
    ``"user@example.com"``) always normalize to the same value. Syntax is
    checked by ``email-validator`` (the validator behind pydantic's
    ``EmailStr``); no DNS lookups are made.
    """
    if email is None:
        raise ValidationError("email is required")
    normalized = email.strip().lower()
    if not normalized:
        raise ValidationError("email is required")
    try:
        result = validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("email is malformed") from exc
    return result.normalized


def normalize_code(code: str | None) -> str:
    if code is None or not code.strip():
        raise ValidationError("code is required")
    return code.strip()
