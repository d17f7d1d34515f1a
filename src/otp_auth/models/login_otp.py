"""SQLAlchemy model for the per-user one-time passcode challenge."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from otp_auth.models.user import Base

if TYPE_CHECKING:
    from otp_auth.models.user import User


class LoginOTP(Base):
    """The live passcode challenge of one user.

    Only the SHA-256 digest of the code is stored. ``version`` is bumped on
    every write so concurrent requests for the same user can detect that
    the row changed underneath them.
    """

    __tablename__ = "login_otps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    user: Mapped[User] = relationship(back_populates="login_otp")

    def __repr__(self) -> str:
        return (
            f"<LoginOTP user_id={self.user_id} attempts={self.attempts} "
            f"expires_at={self.expires_at!s}>"
        )
