"""Rate limiter — caps how many codes a phone can be issued per window."""

from __future__ import annotations

import logging
import math
from datetime import timedelta

from phone_verify.database.session_store import SessionStore
from phone_verify.domain import Clock, Purpose, RateLimitDecision, utcnow
from phone_verify.errors import StoreError
from phone_verify.services.masking import mask_phone

logger = logging.getLogger(__name__)


class RateLimiter:
    """Counts recent sessions for a phone and refuses new ones above a cap.

    The count is re-derived from the session store on every call; nothing is
    cached in process.  If the store cannot be queried the request is
    allowed (fail-open) and the error is logged.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        max_sessions: int = 3,
        window_seconds: int = 900,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._max_sessions = max_sessions
        self._window = timedelta(seconds=window_seconds)
        self._clock = clock

    async def check_and_admit(
        self, phone: str, purpose: Purpose = Purpose.SIGNUP
    ) -> RateLimitDecision:
        now = self._clock()
        try:
            recent = await self._store.query_by_phone_since(
                phone, now - self._window, purpose=purpose
            )
        except StoreError:
            logger.error(
                "Rate limit check failed for %s; allowing request", mask_phone(phone)
            )
            return RateLimitDecision(allowed=True)

        if len(recent) < self._max_sessions:
            return RateLimitDecision(allowed=True)

        oldest = min(record.created_at for record in recent)
        wait = (oldest + self._window - now).total_seconds()
        window_seconds = int(self._window.total_seconds())
        retry_after = min(max(math.ceil(wait), 1), window_seconds)
        logger.warning(
            "Rate limit exceeded for %s (%d sessions in window)",
            mask_phone(phone),
            len(recent),
        )
        return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)
