"""OTP session state machine — decides the fate of a verification attempt.

A session is ISSUED until one of these happens:

* VERIFIED — the right code was submitted; marked used, deleted shortly after.
* EXPIRED  — the TTL elapsed; deleted when detected.
* LOCKED   — the attempt budget is spent; deleted when detected.

A missing session (or one belonging to another flow) reports INVALID.
"""

from __future__ import annotations

import asyncio
import logging

from phone_verify.database.session_store import SessionStore
from phone_verify.domain import Clock, OtpSessionRecord, Purpose, utcnow
from phone_verify.errors import ErrorCode, Failure
from phone_verify.services.background import BackgroundTasks, background_tasks
from phone_verify.services.codes import CodeHasher
from phone_verify.services.masking import mask_phone

logger = logging.getLogger(__name__)


class OtcSessionStateMachine:
    """Applies the verification rules to a stored session.

    The rules run in a fixed order and the first match wins; every check
    that can end the attempt without a code comparison runs before the
    bcrypt compare.  Reads and writes are not locked against each other:
    two concurrent wrong guesses may both see the same ``attempts`` value.
    """

    def __init__(
        self,
        store: SessionStore,
        hasher: CodeHasher,
        *,
        max_attempts: int = 5,
        grace_seconds: float = 5.0,
        clock: Clock = utcnow,
        tasks: BackgroundTasks = background_tasks,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._max_attempts = max_attempts
        self._grace_seconds = grace_seconds
        self._clock = clock
        self._tasks = tasks

    async def verify(
        self,
        session_id: str,
        code: str,
        phone: str,
        purpose: Purpose = Purpose.SIGNUP,
        *,
        consume: bool = True,
    ) -> OtpSessionRecord | Failure:
        """Run one verification attempt.

        Returns the session on success, or a :class:`Failure` describing
        why the attempt was refused.  With ``consume=False`` a correct code
        leaves the session live; the caller must then call :meth:`consume`
        once its own work has succeeded.  Store outages propagate as
        :class:`~phone_verify.errors.StoreError`.
        """
        masked = mask_phone(phone)
        record = await self._store.get_by_id(session_id, purpose=purpose)

        if record is None:
            logger.warning("Session not found for %s. SessionID: %s", masked, session_id)
            return Failure(
                ErrorCode.SESSION_NOT_FOUND,
                "Invalid or expired session. Please request a new OTP.",
            )

        if record.phone != phone:
            logger.warning("Phone mismatch for SessionID: %s", session_id)
            return Failure(ErrorCode.PHONE_MISMATCH, "Phone number does not match the session.")

        if record.used:
            logger.warning("Attempted reuse of OTP for %s", masked)
            return Failure(
                ErrorCode.OTP_ALREADY_USED,
                "This OTP has already been used. Please request a new one.",
            )

        if self._clock() > record.expires_at:
            logger.warning("Expired OTP for %s", masked)
            await self._store.delete(record.id)
            return Failure(ErrorCode.EXPIRED_OTP, "OTP has expired. Please request a new one.")

        if record.attempts >= self._max_attempts:
            logger.warning("Max attempts exceeded for %s", masked)
            await self._store.delete(record.id)
            return Failure(
                ErrorCode.MAX_ATTEMPTS_EXCEEDED,
                "Too many failed attempts. Please request a new OTP.",
            )

        if not await self._hasher.compare_async(code, record.code_hash):
            attempts = record.attempts + 1
            await self._store.update_fields(record.id, attempts=attempts)
            remaining = max(self._max_attempts - attempts, 0)
            logger.warning(
                "Invalid OTP for %s. Attempts: %d/%d", masked, attempts, self._max_attempts
            )
            plural = "" if remaining == 1 else "s"
            return Failure(
                ErrorCode.INVALID_OTP,
                f"Incorrect OTP. {remaining} attempt{plural} remaining.",
                attempts_remaining=remaining,
            )

        logger.info("Valid OTP for %s", masked)
        if not consume:
            return record
        return await self.consume(record)

    async def consume(self, record: OtpSessionRecord) -> OtpSessionRecord:
        """Mark a verified session used and schedule its deletion."""
        await self._store.update_fields(record.id, used=True)
        self._tasks.spawn(
            self._delete_after_grace(record.id), name=f"otp-session-cleanup-{record.id}"
        )
        return record.with_changes(used=True)

    async def _delete_after_grace(self, session_id: str) -> None:
        # A client may re-read the session right after success; keep it briefly.
        if self._grace_seconds > 0:
            await asyncio.sleep(self._grace_seconds)
        await self._store.delete(session_id)
        logger.debug("Consumed session %s removed", session_id)
