"""Database engine and async session factory."""

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from otp_auth.config import settings
from otp_auth.models.login_otp import LoginOTP  # noqa: F401  (registers the table)
from otp_auth.models.user import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless this is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite connections enforce foreign keys."""
    async_engine = create_async_engine(url, echo=echo)
    if async_engine.dialect.name == "sqlite":
        sync_engine: Engine = async_engine.sync_engine
        event.listen(sync_engine, "connect", _enable_sqlite_foreign_keys)
    return async_engine


engine = build_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables that don't yet exist."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session; services commit their own work."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
