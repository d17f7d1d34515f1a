"""Seed script — creates the default role and a few verified sample users."""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.config import settings
from otp_auth.database.engine import async_session_factory, init_db
from otp_auth.database.repository import UserRepository

SAMPLE_USERS = [
    ("alice@example.com", "Alice", "Johnson"),
    ("bob@example.com", "Bob", "Smith"),
    ("carol@example.com", "Carol", "Davis"),
]


async def seed() -> None:
    """Insert the default role and sample users into the database."""
    await init_db()
    async with async_session_factory() as session:
        session: AsyncSession
        repo = UserRepository(session)
        role = await repo.ensure_role(settings.default_role)
        created = 0
        for email, first_name, last_name in SAMPLE_USERS:
            if await repo.find_by_email(email) is not None:
                continue
            user = await repo.create(
                email, first_name=first_name, last_name=last_name, roles=[role]
            )
            await repo.mark_email_verified(user.id)
            created += 1
        await session.commit()
    print(f"✅ Seeded role {settings.default_role!r} and {created} users into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
