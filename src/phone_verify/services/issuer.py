"""Code issuance — rate limit, generate, hash, deliver, then persist."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any

from phone_verify.database.session_store import SessionStore
from phone_verify.domain import (
    Channel,
    Clock,
    IssuanceResult,
    OtpSessionRecord,
    Purpose,
    utcnow,
)
from phone_verify.errors import ErrorCode, Failure
from phone_verify.services.codes import CodeHasher, generate_code
from phone_verify.services.dispatcher import DEFAULT_FAILURE_MESSAGE, DeliveryDispatcher
from phone_verify.services.masking import mask_phone
from phone_verify.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_RATE_LIMIT_LABELS = {
    Purpose.SIGNUP: "OTP requests",
    Purpose.PASSWORD_RESET: "password reset requests",
}


def new_session_id() -> str:
    return secrets.token_urlsafe(16)


class OtpIssuer:
    """Issues a code for one phone number.

    A session is written only after delivery succeeded, so a failed send
    never leaves a live code behind.  The plaintext code is handed back
    only when ``test_mode`` is on.
    """

    def __init__(
        self,
        store: SessionStore,
        rate_limiter: RateLimiter,
        dispatcher: DeliveryDispatcher,
        hasher: CodeHasher,
        *,
        ttl_seconds: int = 300,
        test_mode: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._dispatcher = dispatcher
        self._hasher = hasher
        self._ttl_seconds = ttl_seconds
        self._test_mode = test_mode
        self._clock = clock

    async def issue(
        self,
        phone: str,
        purpose: Purpose,
        *,
        channel: Channel = Channel.WHATSAPP,
        payload: dict[str, Any] | None = None,
    ) -> IssuanceResult | Failure:
        masked = mask_phone(phone)
        logger.info("OTP request (%s) for %s", purpose, masked)

        decision = await self._rate_limiter.check_and_admit(phone, purpose)
        if not decision.allowed:
            label = _RATE_LIMIT_LABELS[purpose]
            return Failure(
                ErrorCode.RATE_LIMIT_EXCEEDED,
                f"Too many {label}. Please try again in "
                f"{decision.retry_after_minutes} minutes.",
                retry_after_seconds=decision.retry_after_seconds,
            )

        code = generate_code()
        code_hash = await self._hasher.hash_async(code)
        logger.debug("Generated OTP for %s", masked)

        delivery = await self._dispatcher.send(phone, code, channel)
        if not delivery.success:
            logger.error("Delivery failed for %s: %s", masked, delivery.error_code)
            return Failure(
                ErrorCode.DELIVERY_FAILED, delivery.message or DEFAULT_FAILURE_MESSAGE
            )

        now = self._clock()
        record = OtpSessionRecord(
            id=new_session_id(),
            purpose=purpose,
            phone=phone,
            code_hash=code_hash,
            channel=channel,
            correlation_id=delivery.correlation_id,
            payload={k: v for k, v in (payload or {}).items() if v is not None},
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        await self._store.create(record)
        logger.info("OTP session created for %s. SessionID: %s", masked, record.id)

        return IssuanceResult(
            session_id=record.id,
            correlation_id=delivery.correlation_id,
            expires_in_seconds=self._ttl_seconds,
            message=f"OTP sent via {'SMS' if channel == Channel.SMS else 'WhatsApp'}",
            test_code=code if self._test_mode else None,
        )
