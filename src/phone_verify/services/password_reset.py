"""Password reset — a second OTP flow gated on an existing account."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from phone_verify.domain import Channel, IssuanceResult, Purpose
from phone_verify.errors import ErrorCode, Failure
from phone_verify.services import validation
from phone_verify.services.identity import IdentityProvider
from phone_verify.services.issuer import OtpIssuer
from phone_verify.services.masking import mask_phone
from phone_verify.services.otc_state_machine import OtcSessionStateMachine

logger = logging.getLogger(__name__)

UNKNOWN_ACCOUNT_MESSAGE = "If an account with this phone number exists, an OTP has been sent."


@dataclass(frozen=True)
class ResetRequested:
    """Returned instead of an issuance when no account matches the phone.

    Callers see the same success message either way, so the response
    does not reveal whether the number is registered.
    """

    message: str = UNKNOWN_ACCOUNT_MESSAGE


@dataclass(frozen=True)
class PasswordChanged:
    account_id: str
    message: str = "Password reset successfully"


class PasswordResetService:
    def __init__(
        self,
        issuer: OtpIssuer,
        state_machine: OtcSessionStateMachine,
        identity: IdentityProvider,
        *,
        password_min_length: int = 6,
    ) -> None:
        self._issuer = issuer
        self._state_machine = state_machine
        self._identity = identity
        self._password_min_length = password_min_length

    async def request_code(self, phone: str | None) -> IssuanceResult | ResetRequested | Failure:
        failure = validation.check_phone(phone)
        if failure:
            return failure

        account_id = await self._identity.find_by_phone(phone)
        if account_id is None:
            logger.warning("Password reset requested for unknown account %s", mask_phone(phone))
            return ResetRequested()

        return await self._issuer.issue(phone, Purpose.PASSWORD_RESET, channel=Channel.WHATSAPP)

    async def reset_password(
        self,
        session_id: str | None,
        code: str | None,
        phone: str | None,
        new_password: str | None,
    ) -> PasswordChanged | Failure:
        if not session_id or not code or not phone or not new_password:
            return Failure(
                ErrorCode.MISSING_REQUIRED_FIELDS,
                "sessionId, otp, phone, and newPassword are required",
            )
        failure = validation.check_password(
            new_password, self._password_min_length
        ) or validation.check_verification(session_id, code, phone)
        if failure:
            return failure

        # Session before account: without a valid code, every phone fails alike.
        outcome = await self._state_machine.verify(
            session_id, code, phone, Purpose.PASSWORD_RESET, consume=False
        )
        if isinstance(outcome, Failure):
            return outcome

        masked = mask_phone(phone)
        account_id = await self._identity.find_by_phone(phone)
        if account_id is None or not await self._identity.set_password(
            account_id, new_password
        ):
            logger.warning("Password reset for missing account %s", masked)
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found")

        # The code stays live until the new password is stored.
        await self._state_machine.consume(outcome)

        logger.info("Password reset successfully for %s", masked)
        return PasswordChanged(account_id=account_id)
