"""Repositories — data access layer for users, roles and passcode challenges."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.models.login_otp import LoginOTP
from otp_auth.models.user import Role, User


class UserRepository:
    """Encapsulates all database queries related to users and their roles."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_email(self, email: str) -> User | None:
        """Look up a user (with roles and challenge) by normalized email."""
        stmt = (
            select(User)
            .where(User.email == email)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_role(self, name: str) -> Role | None:
        result = await self._session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def ensure_role(self, name: str) -> Role:
        """Return the role called *name*, creating it if it does not exist.

        Safe to call concurrently: if another transaction inserts the same
        role first, the unique constraint fires and the winner's row is
        returned instead. Call this before any other pending writes in the
        session, since losing the race rolls the session back.
        """
        role = await self.find_role(name)
        if role is not None:
            return role

        role = Role(name=name)
        self._session.add(role)
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            role = await self.find_role(name)
            if role is None:
                raise
        return role

    async def create(
        self,
        email: str,
        *,
        first_name: str = "",
        last_name: str = "",
        roles: list[Role] | None = None,
    ) -> User:
        """Insert a new user, or return the existing one if *email* was taken
        by a concurrent request.

        Losing that race rolls the whole session back, which expires every
        object loaded through it. Read any ids you still need beforehand.
        """
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            roles=list(roles or []),
        )
        self._session.add(user)
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            existing = await self.find_by_email(email)
            if existing is None:
                raise
            return existing
        await self._session.refresh(user, attribute_names=["login_otp"])
        return user

    async def update(self, user_id: int, **fields: Any) -> User | None:
        """Apply *fields* to the user row and return the refreshed user."""
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
        result = await self._session.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_email_verified(self, user_id: int) -> User | None:
        return await self.update(user_id, email_verified=True)


class ChallengeRepository:
    """Reads and writes the one-per-user ``LoginOTP`` row.

    Writes that depend on a previously read challenge take the ``version``
    that was read and only apply when the row still carries it. They return
    ``False`` when another request changed the row in between.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> LoginOTP | None:
        stmt = (
            select(LoginOTP)
            .where(LoginOTP.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: int,
        *,
        code_hash: str,
        expires_at: datetime,
        attempts: int,
        last_sent_at: datetime,
        expected_version: int | None,
    ) -> bool:
        """Insert the user's challenge, or overwrite it in place.

        ``expected_version=None`` means no challenge was seen, so the row is
        inserted; the unique ``user_id`` constraint rejects a concurrent
        insert. Otherwise the update only applies to the version that was
        read, and bumps it.

        A rejected insert rolls the whole session back and expires every
        object loaded through it, so callers must not read attributes of
        earlier loaded instances afterwards.
        """
        values = {
            "code_hash": code_hash,
            "expires_at": expires_at,
            "attempts": attempts,
            "last_sent_at": last_sent_at,
        }
        if expected_version is None:
            try:
                await self._session.execute(
                    insert(LoginOTP).values(user_id=user_id, version=1, **values)
                )
            except IntegrityError:
                await self._session.rollback()
                return False
            return True

        stmt = (
            update(LoginOTP)
            .where(LoginOTP.user_id == user_id, LoginOTP.version == expected_version)
            .values(version=LoginOTP.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def increment_attempts(
        self, user_id: int, expected_version: int | None = None
    ) -> bool:
        """Add one failed attempt to the user's challenge.

        The version is left unchanged: it tracks issued codes, not attempts.
        """
        stmt = update(LoginOTP).where(LoginOTP.user_id == user_id)
        if expected_version is not None:
            stmt = stmt.where(LoginOTP.version == expected_version)
        stmt = stmt.values(attempts=LoginOTP.attempts + 1).execution_options(
            synchronize_session=False
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def delete(self, user_id: int, expected_version: int | None = None) -> bool:
        stmt = delete(LoginOTP).where(LoginOTP.user_id == user_id)
        if expected_version is not None:
            stmt = stmt.where(LoginOTP.version == expected_version)
        stmt = stmt.execution_options(synchronize_session=False)
        result = await self._session.execute(stmt)
        return result.rowcount == 1
