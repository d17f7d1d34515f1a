"""Passcode generation and hashing.

Codes are hashed before storage; the plaintext never reaches the database
or the logs.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from datetime import UTC, datetime


def generate_code(length: int = 6) -> str:
    """Return a random numeric code of *length* digits."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def hash_code(code: str) -> str:
    """Return the hex-encoded SHA-256 digest of *code*."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def code_matches(code: str, code_hash: str) -> bool:
    """Check *code* against a stored digest in constant time."""
    return hmac.compare_digest(hash_code(code), code_hash)


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
