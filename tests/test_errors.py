"""Unit tests for the error taxonomy."""

import pytest

from otp_auth.errors import (
    DeliveryError,
    ErrorKind,
    InvalidOrExpired,
    InvalidReason,
    PersistenceError,
    Throttled,
    ValidationError,
    public_message,
)


@pytest.mark.parametrize(
    "error, kind, status",
    [
        (ValidationError("bad"), ErrorKind.VALIDATION, 400),
        (Throttled(10), ErrorKind.THROTTLED, 429),
        (InvalidOrExpired(InvalidReason.EXPIRED), ErrorKind.INVALID_OR_EXPIRED, 400),
        (DeliveryError("smtp"), ErrorKind.DELIVERY, 502),
        (PersistenceError("db"), ErrorKind.PERSISTENCE, 500),
    ],
    ids=["validation", "throttled", "invalid", "delivery", "persistence"],
)
def test_kind_and_status(error, kind, status):
    assert error.kind is kind
    assert error.status_code == status
    assert error.to_dict()["code"] == kind.value


def test_details_never_rendered():
    exc = PersistenceError("UNIQUE constraint failed: users.email")
    assert "UNIQUE" not in exc.message
    assert exc.to_dict() == {
        "error": public_message(ErrorKind.PERSISTENCE),
        "code": "persistence_error",
    }


def test_invalid_reasons_render_identically():
    rendered = {
        tuple(InvalidOrExpired(reason).to_dict().items()) for reason in InvalidReason
    }
    assert rendered == {
        (("error", "Invalid or expired code."), ("code", "invalid_or_expired"))
    }


def test_throttled_rounds_retry_after_up():
    exc = Throttled(12.2)
    assert exc.retry_after_seconds == 13
    assert exc.to_dict()["retry_after"] == 13
    assert "13 seconds" in exc.message
    assert Throttled(-5).retry_after_seconds == 1
