"""OTP session store — persistence for one-time-code sessions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from phone_verify.domain import Channel, OtpSessionRecord, Purpose
from phone_verify.errors import StoreError
from phone_verify.models.otp_session import OtpSession

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"attempts", "used"})


class SessionStore(ABC):
    """Contract the OTP state machine relies on.

    Every operation touches a single session and is atomic on its own;
    no multi-record transactions are needed.  Implementations raise
    :class:`~phone_verify.errors.StoreError` when the backend fails.
    """

    @abstractmethod
    async def create(self, record: OtpSessionRecord) -> None:
        """Persist a new session."""

    @abstractmethod
    async def get_by_id(
        self, session_id: str, purpose: Purpose | None = None
    ) -> OtpSessionRecord | None:
        """Return the session, or ``None`` if absent (or of another purpose)."""

    @abstractmethod
    async def query_by_phone_since(
        self, phone: str, since: datetime, purpose: Purpose | None = None
    ) -> list[OtpSessionRecord]:
        """Sessions for *phone* created strictly after *since*, oldest first."""

    @abstractmethod
    async def update_fields(self, session_id: str, **fields: object) -> None:
        """Update ``attempts`` and/or ``used`` on one session."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove a session.  Deleting a missing session is not an error."""


class SqlSessionStore(SessionStore):
    """SQLAlchemy-backed session store.

    Each call opens its own short-lived database session so that the store
    can be used from request handlers and from background tasks alike.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, record: OtpSessionRecord) -> None:
        row = OtpSession(
            id=record.id,
            purpose=str(record.purpose),
            phone=record.phone,
            code_hash=record.code_hash,
            channel=str(record.channel),
            correlation_id=record.correlation_id,
            payload=dict(record.payload),
            attempts=record.attempts,
            used=record.used,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to create OTP session %s: %s", record.id, type(exc).__name__)
            raise StoreError("Could not create OTP session") from exc

    async def get_by_id(
        self, session_id: str, purpose: Purpose | None = None
    ) -> OtpSessionRecord | None:
        stmt = select(OtpSession).where(OtpSession.id == session_id)
        if purpose is not None:
            stmt = stmt.where(OtpSession.purpose == str(purpose))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to load OTP session %s: %s", session_id, type(exc).__name__)
            raise StoreError("Could not load OTP session") from exc
        return _to_record(row) if row is not None else None

    async def query_by_phone_since(
        self, phone: str, since: datetime, purpose: Purpose | None = None
    ) -> list[OtpSessionRecord]:
        stmt = (
            select(OtpSession)
            .where(OtpSession.phone == phone, OtpSession.created_at > since)
            .order_by(OtpSession.created_at.asc())
        )
        if purpose is not None:
            stmt = stmt.where(OtpSession.purpose == str(purpose))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Failed to query OTP sessions: %s", type(exc).__name__)
            raise StoreError("Could not query OTP sessions") from exc
        return [_to_record(row) for row in rows]

    async def update_fields(self, session_id: str, **fields: object) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if not fields or unknown:
            raise ValueError(f"Only {sorted(UPDATABLE_FIELDS)} may be updated, got {sorted(fields)}")
        stmt = update(OtpSession).where(OtpSession.id == session_id).values(**fields)
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to update OTP session %s: %s", session_id, type(exc).__name__)
            raise StoreError("Could not update OTP session") from exc

    async def delete(self, session_id: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(OtpSession).where(OtpSession.id == session_id))
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to delete OTP session %s: %s", session_id, type(exc).__name__)
            raise StoreError("Could not delete OTP session") from exc


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_record(row: OtpSession) -> OtpSessionRecord:
    return OtpSessionRecord(
        id=row.id,
        purpose=Purpose(row.purpose),
        phone=row.phone,
        code_hash=row.code_hash,
        channel=Channel(row.channel),
        correlation_id=row.correlation_id,
        payload=dict(row.payload or {}),
        attempts=row.attempts,
        used=row.used,
        created_at=_as_utc(row.created_at),
        expires_at=_as_utc(row.expires_at),
    )
