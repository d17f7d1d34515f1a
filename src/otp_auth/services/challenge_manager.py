"""Challenge manager — issues one-time passcodes for an email address.

Flow
----
1. Normalize the email and resolve its user, creating the user (and the
   default role) on first contact.
2. Refuse to reissue inside the cool-down window.
3. Generate a code, store only its SHA-256 digest with an expiry, and
   reset the attempt counter.
4. Email the plaintext code to the user.

The plaintext code only lives in memory for the duration of the call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.config import settings
from otp_auth.database.repository import ChallengeRepository, UserRepository
from otp_auth.errors import DeliveryError, OTPError, PersistenceError, Throttled
from otp_auth.models.user import User
from otp_auth.services.email_service import (
    MailRecipient,
    MailSender,
    build_verification_email,
)
from otp_auth.services.passcodes import generate_code, hash_code, utcnow
from otp_auth.services.throttle import ThrottlePolicy
from otp_auth.services.validators import normalize_email

logger = logging.getLogger(__name__)


@dataclass
class Acknowledgement:
    """Returned after a code was issued. Never carries the code."""

    success: bool
    message: str


class ChallengeManager:
    """Creates, throttles and stores passcode challenges."""

    def __init__(
        self,
        session: AsyncSession,
        mail_sender: MailSender,
        *,
        policy: ThrottlePolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        code_length: int | None = None,
        ttl: timedelta | None = None,
        default_role: str | None = None,
        app_url: str | None = None,
    ) -> None:
        self._session = session
        self._users = UserRepository(session)
        self._challenges = ChallengeRepository(session)
        self._mailer = mail_sender
        self._policy = policy or ThrottlePolicy(
            cooldown=timedelta(seconds=settings.otp_cooldown_seconds)
        )
        self._clock = clock
        self._code_length = code_length or settings.otp_length
        self._ttl = ttl or timedelta(seconds=settings.otp_ttl_seconds)
        self._default_role = default_role or settings.default_role
        self._app_url = app_url

    async def request_challenge(self, email: str | None) -> Acknowledgement:
        """Issue a fresh code for *email* and send it.

        Raises
        ------
        ValidationError
            If *email* is missing or malformed.
        Throttled
            If a code was sent less than one cool-down window ago.
        PersistenceError
            If the database could not be read or written.
        DeliveryError
            If the email could not be sent. The stored challenge stays valid.
        """
        normalized = normalize_email(email)

        try:
            user = await self._resolve_user(normalized)
            user_id, user_email = user.id, user.email
            recipient_name = user.first_name or user_email.split("@")[0]
            challenge = user.login_otp
            last_sent_at = challenge.last_sent_at if challenge else None
            seen_version = challenge.version if challenge else None
            await self._session.commit()

            now = self._clock()
            decision = self._policy.check(last_sent_at, now)
            if not decision.allowed:
                logger.info(
                    "Passcode for user %s throttled (%.0fs left)",
                    user_id,
                    decision.retry_after,
                )
                raise Throttled(decision.retry_after, "cool-down active")

            code = generate_code(self._code_length)
            expires_at = now + self._ttl
            stored = await self._challenges.upsert(
                user_id,
                code_hash=hash_code(code),
                expires_at=expires_at,
                attempts=0,
                last_sent_at=now,
                expected_version=seen_version,
            )
            if not stored:
                logger.info("Passcode for user %s issued concurrently; throttling", user_id)
                raise Throttled(
                    self._policy.cooldown.total_seconds(), "concurrent issuance"
                )
            await self._session.commit()
        except OTPError:
            await self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("Passcode issuance for %s failed: %s", normalized, type(exc).__name__)
            raise PersistenceError("storage failure during issuance") from exc

        logger.info("Passcode issued for user %s, expires %s", user_id, expires_at.isoformat())

        await self._send(MailRecipient(user_email, recipient_name), code)
        return Acknowledgement(success=True, message="OTP sent successfully")

    # ── Private helpers ──────────────────────────────────

    async def _resolve_user(self, email: str) -> User:
        """Find the user for *email*, creating it with the default role."""
        user = await self._users.find_by_email(email)
        if user is not None:
            return user

        role = await self._users.ensure_role(self._default_role)
        user = await self._users.create(
            email,
            first_name=email.split("@")[0],
            last_name="",
            roles=[role],
        )
        logger.info("Created user %s for %s", user.id, email)
        return user

    async def _send(self, to: MailRecipient, code: str) -> None:
        subject, html_body = build_verification_email(
            to.email,
            code,
            ttl_minutes=int(self._ttl.total_seconds() // 60),
            app_url=self._app_url,
        )
        try:
            receipt = await self._mailer.send(to, subject, html_body)
        except DeliveryError:
            raise
        except Exception as exc:
            logger.error("Passcode email to %s failed: %s", to.email, type(exc).__name__)
            raise DeliveryError(f"mail sender: {type(exc).__name__}") from exc
        logger.debug("Passcode email accepted for %s: %s", to.email, receipt)
