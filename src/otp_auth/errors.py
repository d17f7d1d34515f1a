"""
Error taxonomy for the passcode flow, and its FastAPI exception handlers.

Every failure inside the services is raised as an ``OTPError`` subclass
tagged with an ``ErrorKind``. User-facing text is rendered only at the
boundary by ``public_message``, so callers cannot tell an unknown email
from a wrong or expired code.
"""

from __future__ import annotations

import enum
import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation_error"
    THROTTLED = "throttled"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    DELIVERY = "delivery_error"
    PERSISTENCE = "persistence_error"


class InvalidReason(str, enum.Enum):
    """Why a verification failed. Logged, never rendered."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    SUPERSEDED = "superseded"


_PUBLIC_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "A valid email address and code are required.",
    ErrorKind.THROTTLED: "Please wait before requesting a new code.",
    ErrorKind.INVALID_OR_EXPIRED: "Invalid or expired code.",
    ErrorKind.DELIVERY: "Failed to send verification email.",
    ErrorKind.PERSISTENCE: "Something went wrong. Please try again later.",
}


def public_message(kind: ErrorKind) -> str:
    """Return the stable, non-sensitive message shown for *kind*."""
    return _PUBLIC_MESSAGES[kind]


class OTPError(Exception):
    """Base class for all passcode-flow errors."""

    kind: ErrorKind = ErrorKind.PERSISTENCE
    status_code: int = 500

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.kind.value)
        self.detail = detail

    @property
    def message(self) -> str:
        return public_message(self.kind)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.kind.value}


class ValidationError(OTPError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class Throttled(OTPError):
    """Raised when a new code is requested inside the cool-down window."""

    kind = ErrorKind.THROTTLED
    status_code = 429

    def __init__(self, retry_after: float, detail: str = "") -> None:
        super().__init__(detail)
        self.retry_after = max(0.0, retry_after)

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.retry_after))

    @property
    def message(self) -> str:
        return (
            f"Please wait {self.retry_after_seconds} seconds before "
            "requesting a new code."
        )

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["retry_after"] = self.retry_after_seconds
        return payload


class InvalidOrExpired(OTPError):
    kind = ErrorKind.INVALID_OR_EXPIRED
    status_code = 400

    def __init__(self, reason: InvalidReason, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


class DeliveryError(OTPError):
    kind = ErrorKind.DELIVERY
    status_code = 502


class PersistenceError(OTPError):
    kind = ErrorKind.PERSISTENCE
    status_code = 500


def register_error_handlers(app: FastAPI) -> None:
    """Register the exception handler that renders ``OTPError`` responses."""

    @app.exception_handler(OTPError)
    async def otp_error_handler(request: Request, exc: OTPError) -> JSONResponse:
        headers = None
        if isinstance(exc, Throttled):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        logger.info(
            "%s %s failed: %s (%s)",
            request.method,
            request.url.path,
            exc.kind.value,
            exc.detail or "-",
        )
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=headers
        )
