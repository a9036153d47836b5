"""Value objects shared by the store, the services and the API layer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class Purpose(StrEnum):
    """Which flow an OTP session belongs to."""

    SIGNUP = "signup"
    PASSWORD_RESET = "password_reset"


class Channel(StrEnum):
    """Message channel used to deliver a code."""

    WHATSAPP = "whatsapp"
    SMS = "sms"


@dataclass(frozen=True)
class OtpSessionRecord:
    """Immutable snapshot of one stored OTP session."""

    id: str
    purpose: Purpose
    phone: str
    code_hash: str
    channel: Channel
    created_at: datetime
    expires_at: datetime
    correlation_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    used: bool = False

    @property
    def name(self) -> str | None:
        return self.payload.get("name")

    @property
    def email(self) -> str | None:
        return self.payload.get("email")

    def with_changes(self, **changes: Any) -> OtpSessionRecord:
        return replace(self, **changes)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int | None = None

    @property
    def retry_after_minutes(self) -> int | None:
        if self.retry_after_seconds is None:
            return None
        return -(-self.retry_after_seconds // 60)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single delivery attempt."""

    success: bool
    correlation_id: str | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class ResolvedAccount:
    existed: bool
    account_id: str


@dataclass(frozen=True)
class IssuanceResult:
    """What the caller learns about a freshly issued code.

    ``test_code`` is only populated when OTP test mode is enabled and is
    never part of the serialised response unless the API layer opts in.
    """

    session_id: str
    correlation_id: str | None
    expires_in_seconds: int
    message: str
    test_code: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class VerificationSuccess:
    is_new_account: bool
    account_id: str
    credential: str = field(repr=False)
    phone: str
    message: str
    name: str | None = None
    email: str | None = None
