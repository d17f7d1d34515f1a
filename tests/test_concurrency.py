"""Concurrent issuance and verification against a shared file-backed database.

Each simulated request gets its own session (and so its own connection),
the way ``get_session`` hands them out per HTTP request.
"""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import sent_code
from otp_auth.database.engine import build_engine, init_db
from otp_auth.database.repository import ChallengeRepository, UserRepository
from otp_auth.errors import InvalidOrExpired, InvalidReason, Throttled
from otp_auth.models.user import Role, User
from otp_auth.services.challenge_manager import Acknowledgement, ChallengeManager
from otp_auth.services.session_issuer import JwtSessionIssuer
from otp_auth.services.verifier import VerificationResult, Verifier

EMAIL = "new@example.com"


@pytest_asyncio.fixture
async def sessions(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'otp.db'}")
    await init_db(engine)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


async def _request(sessions, mail_sender, clock, email=EMAIL):
    async with sessions() as session:
        return await ChallengeManager(session, mail_sender, clock=clock).request_challenge(email)


async def _verify(sessions, clock, code, email=EMAIL):
    async with sessions() as session:
        verifier = Verifier(session, JwtSessionIssuer("test-secret"), clock=clock)
        return await verifier.verify(email, code)


async def _challenge(sessions, email=EMAIL):
    async with sessions() as session:
        user = await UserRepository(session).find_by_email(email)
        return await ChallengeRepository(session).get(user.id)


@pytest.mark.asyncio
async def test_parallel_first_contact_issues_one_code(sessions, mail_sender, clock):
    results = await asyncio.gather(
        *(_request(sessions, mail_sender, clock) for _ in range(5)),
        return_exceptions=True,
    )

    acks = [r for r in results if isinstance(r, Acknowledgement)]
    assert len(acks) == 1
    assert all(isinstance(r, (Acknowledgement, Throttled)) for r in results)
    assert mail_sender.send.await_count == 1

    async with sessions() as session:
        assert await session.scalar(select(func.count()).select_from(User)) == 1
        assert await session.scalar(select(func.count()).select_from(Role)) == 1


@pytest.mark.asyncio
async def test_parallel_reissue_after_cooldown_sends_one_email(
    sessions, mail_sender, clock
):
    await _request(sessions, mail_sender, clock)
    clock.advance(61)

    results = await asyncio.gather(
        *(_request(sessions, mail_sender, clock) for _ in range(5)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Acknowledgement) for r in results) == 1
    assert sum(isinstance(r, Throttled) for r in results) == 4
    assert mail_sender.send.await_count == 2
    challenge = await _challenge(sessions)
    assert challenge.version == 2


@pytest.mark.asyncio
async def test_parallel_verify_consumes_code_once(sessions, mail_sender, clock):
    await _request(sessions, mail_sender, clock)
    code = sent_code(mail_sender)

    results = await asyncio.gather(
        *(_verify(sessions, clock, code) for _ in range(4)),
        return_exceptions=True,
    )

    wins = [r for r in results if isinstance(r, VerificationResult)]
    losses = [r for r in results if isinstance(r, InvalidOrExpired)]
    assert len(wins) == 1
    assert len(losses) == 3
    assert {e.reason for e in losses} <= {InvalidReason.SUPERSEDED, InvalidReason.NOT_FOUND}
    assert await _challenge(sessions) is None


@pytest.mark.asyncio
async def test_reissue_between_read_and_consume_supersedes_old_code(
    sessions, mail_sender, clock, monkeypatch
):
    await _request(sessions, mail_sender, clock)
    old_code = sent_code(mail_sender)
    original_delete = ChallengeRepository.delete
    interleaved = []

    async def delete_after_reissue(self, user_id, expected_version=None):
        if not interleaved:
            interleaved.append(True)
            clock.advance(61)
            await _request(sessions, mail_sender, clock)
        return await original_delete(self, user_id, expected_version)

    monkeypatch.setattr(ChallengeRepository, "delete", delete_after_reissue)

    with pytest.raises(InvalidOrExpired) as exc_info:
        await _verify(sessions, clock, old_code)

    assert exc_info.value.reason is InvalidReason.SUPERSEDED
    assert mail_sender.send.await_count == 2
    challenge = await _challenge(sessions)
    assert challenge.version == 2
    async with sessions() as session:
        user = await UserRepository(session).find_by_email(EMAIL)
        assert user.email_verified is False

    # The freshly issued code is unaffected and still verifies.
    result = await _verify(sessions, clock, sent_code(mail_sender))
    assert result.user.email_verified is True


@pytest.mark.asyncio
async def test_reissue_between_read_and_write_is_throttled(
    sessions, mail_sender, clock, monkeypatch
):
    await _request(sessions, mail_sender, clock)
    clock.advance(61)
    original_upsert = ChallengeRepository.upsert
    interleaved = []

    async def upsert_after_reissue(self, user_id, **values):
        if not interleaved:
            interleaved.append(True)
            await _request(sessions, mail_sender, clock)
        return await original_upsert(self, user_id, **values)

    monkeypatch.setattr(ChallengeRepository, "upsert", upsert_after_reissue)

    with pytest.raises(Throttled) as exc_info:
        await _request(sessions, mail_sender, clock)

    assert exc_info.value.retry_after_seconds == 60
    assert mail_sender.send.await_count == 2
    challenge = await _challenge(sessions)
    assert challenge.version == 2


@pytest.mark.asyncio
async def test_first_issue_race_on_insert_is_throttled(
    sessions, mail_sender, clock, monkeypatch
):
    original_upsert = ChallengeRepository.upsert
    interleaved = []

    async def upsert_after_other_insert(self, user_id, **values):
        if not interleaved:
            interleaved.append(True)
            await _request(sessions, mail_sender, clock)
        return await original_upsert(self, user_id, **values)

    monkeypatch.setattr(ChallengeRepository, "upsert", upsert_after_other_insert)

    with pytest.raises(Throttled):
        await _request(sessions, mail_sender, clock)

    assert mail_sender.send.await_count == 1
    challenge = await _challenge(sessions)
    assert challenge.version == 1
