"""SQLAlchemy model for one-time-code sessions."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from phone_verify.models.account import Base


class OtpSession(Base):
    """One row per issued code.

    Only the bcrypt hash of the code is stored. Rows are short-lived: they
    are deleted once the code is consumed, expires, or runs out of attempts.
    """

    __tablename__ = "otp_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_otp_sessions_phone_purpose_created", "phone", "purpose", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OtpSession id={self.id} purpose={self.purpose} attempts={self.attempts}>"
