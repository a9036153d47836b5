"""OTP router — code issuance and verification endpoints.

Endpoints
---------
POST /otp/send     → issue a code and deliver it
POST /otp/verify   → check a code; returns an account credential
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from phone_verify.api.common import CamelModel, failure_response, run_bounded
from phone_verify.config import settings
from phone_verify.dependencies import get_otp_service
from phone_verify.errors import Failure
from phone_verify.services.otp_service import OtpService

router = APIRouter(prefix="/otp", tags=["otp"])


# ── Request / response models ────────────────────────────

class SendOtpRequest(CamelModel):
    phone: str | None = None
    name: str | None = None
    email: str | None = None
    channel: str | None = None


class SendOtpResponse(CamelModel):
    success: bool = True
    session_id: str
    message_sid: str | None = None
    message: str
    expires_in: int
    test_otp: str | None = None


class VerifyOtpRequest(CamelModel):
    session_id: str | None = None
    otp: str | None = None
    phone: str | None = None


class VerifyOtpResponse(CamelModel):
    success: bool = True
    new_user: bool
    account_id: str
    credential: str
    phone: str
    message: str
    name: str | None = None
    email: str | None = None


# ── Endpoints ────────────────────────────────────────────

@router.post("/send", response_model=SendOtpResponse, response_model_exclude_none=True)
async def send_otp(
    body: SendOtpRequest, service: OtpService = Depends(get_otp_service)
) -> SendOtpResponse | JSONResponse:
    """Issue a one-time code for ``body.phone``."""
    result = await run_bounded(
        service.issue(body.phone, name=body.name, email=body.email, channel=body.channel)
    )
    if isinstance(result, Failure):
        return failure_response(result)

    return SendOtpResponse(
        session_id=result.session_id,
        message_sid=result.correlation_id,
        message=result.message,
        expires_in=result.expires_in_seconds,
        test_otp=result.test_code if settings.otp_test_mode else None,
    )


@router.post("/verify", response_model=VerifyOtpResponse, response_model_exclude_none=True)
async def verify_otp(
    body: VerifyOtpRequest, service: OtpService = Depends(get_otp_service)
) -> VerifyOtpResponse | JSONResponse:
    """Verify a submitted code against its session."""
    result = await run_bounded(service.verify(body.session_id, body.otp, body.phone))
    if isinstance(result, Failure):
        return failure_response(result)

    return VerifyOtpResponse(
        new_user=result.is_new_account,
        account_id=result.account_id,
        credential=result.credential,
        phone=result.phone,
        message=result.message,
        name=result.name,
        email=result.email,
    )
