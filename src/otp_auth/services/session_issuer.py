"""Session issuer — mints access/refresh tokens for a verified user."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

import jwt

from otp_auth.config import settings
from otp_auth.services.passcodes import utcnow

if TYPE_CHECKING:
    from otp_auth.models.user import User


class SessionIssuer(Protocol):
    async def issue_tokens(self, user: User) -> dict[str, str]: ...


class JwtSessionIssuer:
    """HS256 access and refresh tokens signed with ``settings.jwt_secret``."""

    def __init__(
        self,
        secret: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secret = secret or settings.jwt_secret
        self._clock = clock

    def _encode(self, user: User, token_type: str, ttl_seconds: int) -> str:
        now = self._clock()
        claims = {
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "sub": str(user.id),
            "email": user.email,
            "typ": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm="HS256")

    async def issue_tokens(self, user: User) -> dict[str, str]:
        return {
            "access_token": self._encode(user, "access", settings.access_token_ttl_seconds),
            "refresh_token": self._encode(
                user, "refresh", settings.refresh_token_ttl_seconds
            ),
        }

