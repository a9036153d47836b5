"""Input validation for issuance and verification requests.

Each check returns a :class:`~phone_verify.errors.Failure` or ``None`` and
never touches the store.
"""

from __future__ import annotations

import re

from phone_verify.errors import ErrorCode, Failure

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
CODE_PATTERN = re.compile(r"^\d{6}$")
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,64}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def check_phone(phone: str | None) -> Failure | None:
    if not phone:
        return Failure(ErrorCode.MISSING_PHONE, "Phone number is required")
    if not E164_PATTERN.match(phone):
        return Failure(
            ErrorCode.INVALID_PHONE_FORMAT,
            "Phone number must be in E.164 format (e.g., +2348100000000)",
        )
    return None


def check_email(email: str | None) -> Failure | None:
    if email and not EMAIL_PATTERN.match(email):
        return Failure(ErrorCode.INVALID_EMAIL, "email must be a valid email address")
    return None


def check_verification(
    session_id: str | None, code: str | None, phone: str | None
) -> Failure | None:
    """Validate the three fields every verification request carries."""
    if not session_id or not code or not phone:
        return Failure(
            ErrorCode.MISSING_REQUIRED_FIELDS, "sessionId, otp, and phone are required"
        )
    if not CODE_PATTERN.match(code):
        return Failure(ErrorCode.INVALID_OTP_FORMAT, "OTP must be 6 digits")
    if not SESSION_ID_PATTERN.match(session_id):
        return Failure(ErrorCode.INVALID_SESSION_ID, "Session id is malformed")
    return check_phone(phone)


def check_password(password: str | None, min_length: int) -> Failure | None:
    if not password or len(password) < min_length:
        return Failure(
            ErrorCode.WEAK_PASSWORD,
            f"Password must be at least {min_length} characters long",
        )
    return None
