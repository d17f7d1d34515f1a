"""Verifier — checks a presented passcode against the stored challenge."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.database.repository import ChallengeRepository, UserRepository
from otp_auth.errors import InvalidOrExpired, InvalidReason, OTPError, PersistenceError
from otp_auth.models.user import User
from otp_auth.services.passcodes import as_utc, code_matches, utcnow
from otp_auth.services.session_issuer import SessionIssuer
from otp_auth.services.validators import normalize_code, normalize_email

logger = logging.getLogger(__name__)


@dataclass
class UserView:
    """Public projection of a user; safe to serialize."""

    id: int
    email: str
    first_name: str
    last_name: str
    email_verified: bool
    roles: list[str] = field(default_factory=list)

    @classmethod
    def from_model(cls, user: User) -> UserView:
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            email_verified=user.email_verified,
            roles=[role.name for role in user.roles],
        )


@dataclass
class VerificationResult:
    success: bool
    message: str
    user: UserView
    tokens: dict[str, str] = field(default_factory=dict)

    @property
    def access_token(self) -> str | None:
        return self.tokens.get("access_token")

    @property
    def refresh_token(self) -> str | None:
        return self.tokens.get("refresh_token")

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            **self.tokens,
            "user": asdict(self.user),
        }


class Verifier:
    """Consumes passcodes.

    Outcomes for a stored challenge
    -------------------------------
    * expired → rejected, challenge left untouched
    * wrong code → ``attempts`` + 1, challenge kept
    * right code → user marked verified and challenge deleted, in one
      transaction; tokens are minted when a session is requested

    Every rejection surfaces as ``InvalidOrExpired`` so the caller cannot
    tell an unknown email from a bad code.
    """

    def __init__(
        self,
        session: AsyncSession,
        session_issuer: SessionIssuer,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._users = UserRepository(session)
        self._challenges = ChallengeRepository(session)
        self._issuer = session_issuer
        self._clock = clock

    async def verify(
        self,
        email: str | None,
        code: str | None,
        should_issue_session: bool = False,
    ) -> VerificationResult:
        """Verify *code* for *email*; see the class docstring for outcomes."""
        normalized = normalize_email(email)
        presented = normalize_code(code)

        try:
            user = await self._users.find_by_email(normalized)
            challenge = user.login_otp if user is not None else None
            if user is None or challenge is None:
                raise InvalidOrExpired(InvalidReason.NOT_FOUND)

            user_id, version = user.id, challenge.version
            if self._clock() > as_utc(challenge.expires_at):
                raise InvalidOrExpired(InvalidReason.EXPIRED)

            if not code_matches(presented, challenge.code_hash):
                await self._challenges.increment_attempts(user_id, version)
                await self._session.commit()
                raise InvalidOrExpired(InvalidReason.INVALID_CODE)

            if not await self._challenges.delete(user_id, version):
                raise InvalidOrExpired(InvalidReason.SUPERSEDED)

            user = await self._users.mark_email_verified(user_id)
            if user is None:
                raise InvalidOrExpired(InvalidReason.NOT_FOUND)
            view = UserView.from_model(user)
            tokens = await self._issue_tokens(user) if should_issue_session else {}
            await self._session.commit()
        except InvalidOrExpired as exc:
            await self._session.rollback()
            logger.info("Verification for %s rejected: %s", normalized, exc.reason.value)
            raise
        except OTPError:
            await self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("Verification for %s failed: %s", normalized, type(exc).__name__)
            raise PersistenceError("storage failure during verification") from exc

        logger.info("User %s verified email %s", view.id, view.email)
        return VerificationResult(
            success=True,
            message="Verification successful.",
            user=view,
            tokens=tokens,
        )

    async def _issue_tokens(self, user: User) -> dict[str, str]:
        try:
            return dict(await self._issuer.issue_tokens(user))
        except OTPError:
            raise
        except Exception as exc:
            logger.error("Session issuance for user %s failed: %s", user.id, type(exc).__name__)
            raise PersistenceError("session issuance failed") from exc
