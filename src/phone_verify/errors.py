"""Failure codes and upstream error types.

Two families of error exist:

* :class:`Failure` values — expected, user-facing outcomes (bad input,
  rate limit, wrong code, expired session…).  Services *return* them.
* :class:`UpstreamError` exceptions — a dependency (database, identity
  store) is unavailable.  Services *raise* them and the API layer turns
  them into a generic server error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable machine-readable failure codes."""

    # Validation
    MISSING_PHONE = "MISSING_PHONE"
    INVALID_PHONE_FORMAT = "INVALID_PHONE_FORMAT"
    MISSING_REQUIRED_FIELDS = "MISSING_REQUIRED_FIELDS"
    INVALID_OTP_FORMAT = "INVALID_OTP_FORMAT"
    INVALID_SESSION_ID = "INVALID_SESSION_ID"
    INVALID_EMAIL = "INVALID_EMAIL"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    INVALID_ACTION = "INVALID_ACTION"

    # Rate limiting
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Session lifecycle
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PHONE_MISMATCH = "PHONE_MISMATCH"
    OTP_ALREADY_USED = "OTP_ALREADY_USED"
    EXPIRED_OTP = "EXPIRED_OTP"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    INVALID_OTP = "INVALID_OTP"

    # Accounts
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Upstream
    DELIVERY_FAILED = "DELIVERY_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True)
class Failure:
    """A typed, user-facing failure returned by a service call."""

    code: ErrorCode
    message: str
    attempts_remaining: int | None = None
    retry_after_seconds: int | None = None


class UpstreamError(Exception):
    """A dependency failed; the caller should retry later."""


class StoreError(UpstreamError):
    """The session store could not complete an operation."""


class IdentityError(UpstreamError):
    """The identity provider could not complete an operation."""
