"""Delivery dispatcher — sends one-time codes over SMS or WhatsApp.

The production implementation talks to the Twilio REST API.  When no
Twilio credentials are configured it runs in *test mode*: nothing is sent,
the (masked) destination is logged, and a synthetic message id is returned.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from phone_verify.config import settings
from phone_verify.domain import Channel, DeliveryResult
from phone_verify.errors import ErrorCode
from phone_verify.services.masking import mask_phone

logger = logging.getLogger(__name__)

# User-facing explanations for the Twilio error codes users actually hit.
TWILIO_ERROR_MESSAGES = {
    21211: "Invalid phone number format. Please check and try again.",
    21408: "Permission denied for this phone number.",
    21610: "Message blocked by carrier. Number may be on do-not-contact list.",
    21614: "This is not a valid mobile number.",
    21608: "This phone number is not SMS-capable.",
    30007: "Message filtered as spam. Contact support.",
}
DEFAULT_FAILURE_MESSAGE = "Failed to send verification code. Please try again."


class DeliveryDispatcher(ABC):
    """Abstract base class for code delivery channels."""

    @abstractmethod
    async def send(
        self, phone: str, code: str, channel: Channel = Channel.WHATSAPP
    ) -> DeliveryResult:
        """Deliver *code* to *phone* once.

        Implementations never raise for delivery problems; they return a
        failed :class:`DeliveryResult` instead.
        """


class TwilioDispatcher(DeliveryDispatcher):
    """Async HTTP wrapper around Twilio's Messages API."""

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        whatsapp_number: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        ttl_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._account_sid = account_sid if account_sid is not None else settings.twilio_account_sid
        self._auth_token = auth_token if auth_token is not None else settings.twilio_auth_token
        self._from_number = from_number if from_number is not None else settings.twilio_phone_number
        self._whatsapp_number = (
            whatsapp_number if whatsapp_number is not None else settings.twilio_whatsapp_number
        )
        self._base_url = (base_url or settings.twilio_api_base_url).rstrip("/")
        self._timeout = timeout or settings.twilio_timeout_seconds
        self._ttl_seconds = ttl_seconds or settings.otp_ttl_seconds
        self._transport = transport

    @property
    def test_mode(self) -> bool:
        return not (self._account_sid and self._auth_token and self._from_number)

    async def send(
        self, phone: str, code: str, channel: Channel = Channel.WHATSAPP
    ) -> DeliveryResult:
        masked = mask_phone(phone)

        if self.test_mode:
            logger.info("TEST MODE - would send %s code to %s", channel, masked)
            return DeliveryResult(success=True, correlation_id=f"SM_TEST_{int(time.time() * 1000)}")

        if channel == Channel.WHATSAPP and self._whatsapp_number:
            to_number = f"whatsapp:{phone}"
            from_number = f"whatsapp:{self._whatsapp_number}"
        else:
            if channel == Channel.WHATSAPP:
                logger.info("WhatsApp sender not configured, using SMS for %s", masked)
            to_number = phone
            from_number = self._from_number

        url = f"{self._base_url}/Accounts/{self._account_sid}/Messages.json"
        data = {"To": to_number, "From": from_number, "Body": self._build_body(code)}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    url, data=data, auth=(self._account_sid, self._auth_token)
                )
        except httpx.HTTPError as exc:
            logger.error("Twilio request error for %s: %s", masked, type(exc).__name__)
            return DeliveryResult(
                success=False,
                error_code=ErrorCode.DELIVERY_FAILED,
                message=DEFAULT_FAILURE_MESSAGE,
            )

        if resp.is_success:
            # The message is already accepted; a garbled body only loses the SID.
            message_sid = _json_field(resp, "sid")
            logger.info("Code sent to %s. Message SID: %s", masked, message_sid)
            return DeliveryResult(success=True, correlation_id=message_sid)

        provider_code = _json_field(resp, "code")
        logger.error(
            "Failed to send code to %s: HTTP %s, Twilio error %s",
            masked,
            resp.status_code,
            provider_code,
        )
        return DeliveryResult(
            success=False,
            error_code=ErrorCode.DELIVERY_FAILED,
            message=TWILIO_ERROR_MESSAGES.get(provider_code, DEFAULT_FAILURE_MESSAGE),
        )

    def _build_body(self, code: str) -> str:
        minutes = max(1, self._ttl_seconds // 60)
        return (
            f"{code} is your {settings.app_name} verification code. "
            f"Valid for {minutes} minutes. Do not share this code with anyone."
        )


def _json_field(resp: httpx.Response, key: str) -> Any:
    try:
        body = resp.json()
    except ValueError:
        return None
    return body.get(key) if isinstance(body, dict) else None
