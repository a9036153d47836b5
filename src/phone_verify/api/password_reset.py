"""Password reset router.

A single endpoint multiplexed on ``action``:

* ``request_otp``     — send a reset code to a registered phone
* ``reset_password``  — verify the code and set ``newPassword``
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from phone_verify.api.common import CamelModel, failure_response, run_bounded
from phone_verify.config import settings
from phone_verify.dependencies import get_password_reset_service
from phone_verify.errors import ErrorCode, Failure
from phone_verify.services.password_reset import PasswordResetService, ResetRequested

router = APIRouter(tags=["password-reset"])


class PasswordResetRequest(CamelModel):
    action: str | None = None
    phone: str | None = None
    session_id: str | None = None
    otp: str | None = None
    new_password: str | None = None


class PasswordResetResponse(CamelModel):
    success: bool = True
    message: str
    session_id: str | None = None
    message_sid: str | None = None
    expires_in: int | None = None
    test_otp: str | None = None


@router.post(
    "/password-reset", response_model=PasswordResetResponse, response_model_exclude_none=True
)
async def password_reset(
    body: PasswordResetRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> PasswordResetResponse | JSONResponse:
    if body.action == "request_otp":
        result = await run_bounded(service.request_code(body.phone))
        if isinstance(result, Failure):
            return failure_response(result)
        if isinstance(result, ResetRequested):
            return PasswordResetResponse(message=result.message)
        return PasswordResetResponse(
            message="OTP sent to your phone",
            session_id=result.session_id,
            message_sid=result.correlation_id,
            expires_in=result.expires_in_seconds,
            test_otp=result.test_code if settings.otp_test_mode else None,
        )

    if body.action == "reset_password":
        result = await run_bounded(
            service.reset_password(body.session_id, body.otp, body.phone, body.new_password)
        )
        if isinstance(result, Failure):
            return failure_response(result)
        return PasswordResetResponse(message=result.message)

    return failure_response(
        Failure(ErrorCode.INVALID_ACTION, 'action must be "request_otp" or "reset_password"')
    )
