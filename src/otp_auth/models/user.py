"""SQLAlchemy User and Role models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from otp_auth.models.login_otp import LoginOTP


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    """A named grouping of users (e.g. ``user``, ``admin``)."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Role id={self.id} name={self.name!r}>"


class User(Base):
    """Represents an account tied to a single email address.

    Users are created lazily the first time a one-time passcode is
    requested for an unseen email, and flip ``email_verified`` once a
    passcode sent to that address is confirmed.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(256), nullable=False, unique=True, index=True,
        doc="Trimmed, lower-cased email address",
    )
    first_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    roles: Mapped[list[Role]] = relationship(secondary=user_roles, lazy="selectin")
    login_otp: Mapped[LoginOTP | None] = relationship(
        back_populates="user",
        uselist=False,
        lazy="selectin",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
