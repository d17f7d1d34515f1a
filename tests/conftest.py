"""Shared fixtures: in-memory database, controllable clock, mocked mail sender."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from otp_auth.database.engine import build_engine
from otp_auth.models.user import Base
from otp_auth.services.email_service import DeliveryReceipt

# ── In-memory test database ─────────────────────────────
_test_engine = build_engine("sqlite+aiosqlite://")
_test_session_factory = async_sessionmaker(_test_engine, expire_on_commit=False)

_OTP_IN_LINK = re.compile(r"otp=(\d+)")


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def session_factory():
    """Create tables in a fresh in-memory DB and yield a session factory."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield _test_session_factory

    # Tear down
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mail_sender():
    """Mocked mail sender — never actually sends emails."""
    sender = AsyncMock()
    sender.send.return_value = DeliveryReceipt(recipient="test", response="250 OK")
    return sender


def sent_code(mail_sender, call_index: int = -1) -> str:
    """Pull the plaintext code out of the verification link of a sent email."""
    html_body = mail_sender.send.await_args_list[call_index].args[2]
    match = _OTP_IN_LINK.search(html_body)
    assert match is not None, "no verification link in email body"
    return match.group(1)
