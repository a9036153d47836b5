"""OTP service — the sign-up / sign-in flow built on the OTP session core."""

from __future__ import annotations

import logging

from phone_verify.domain import Channel, IssuanceResult, Purpose, VerificationSuccess
from phone_verify.errors import Failure
from phone_verify.services import validation
from phone_verify.services.background import BackgroundTasks, background_tasks
from phone_verify.services.email_service import EmailService
from phone_verify.services.identity import IdentityProvider
from phone_verify.services.issuer import OtpIssuer
from phone_verify.services.masking import mask_email, mask_phone
from phone_verify.services.otc_state_machine import OtcSessionStateMachine

logger = logging.getLogger(__name__)


class OtpService:
    """Issues codes and turns a verified code into an account credential.

    Flow
    ----
    1. ``issue`` validates the phone, applies the rate limit, delivers a
       fresh code and stores its session (with optional name/email).
    2. ``verify`` runs the session state machine.  On success the phone is
       resolved to an account (created on first verification, carrying the
       stored name/email), and a credential is minted.
    3. New accounts with an email get a welcome email in the background.
    """

    def __init__(
        self,
        issuer: OtpIssuer,
        state_machine: OtcSessionStateMachine,
        identity: IdentityProvider,
        email_service: EmailService | None = None,
        tasks: BackgroundTasks = background_tasks,
    ) -> None:
        self._issuer = issuer
        self._state_machine = state_machine
        self._identity = identity
        self._email_service = email_service or EmailService()
        self._tasks = tasks

    async def issue(
        self,
        phone: str | None,
        *,
        name: str | None = None,
        email: str | None = None,
        channel: str | None = None,
    ) -> IssuanceResult | Failure:
        failure = validation.check_phone(phone) or validation.check_email(email)
        if failure:
            return failure

        return await self._issuer.issue(
            phone,
            Purpose.SIGNUP,
            channel=Channel.SMS if channel == Channel.SMS else Channel.WHATSAPP,
            payload={"name": name, "email": email},
        )

    async def verify(
        self, session_id: str | None, code: str | None, phone: str | None
    ) -> VerificationSuccess | Failure:
        failure = validation.check_verification(session_id, code, phone)
        if failure:
            return failure

        masked = mask_phone(phone)
        logger.info("Verification attempt for %s. SessionID: %s", masked, session_id)

        outcome = await self._state_machine.verify(session_id, code, phone, Purpose.SIGNUP)
        if isinstance(outcome, Failure):
            return outcome

        resolved = await self._identity.resolve_or_create(
            phone, name=outcome.name, email=outcome.email
        )
        credential = await self._identity.mint_credential(resolved.account_id)

        if resolved.existed:
            logger.info("Existing user authenticated: %s", masked)
            return VerificationSuccess(
                is_new_account=False,
                account_id=resolved.account_id,
                credential=credential,
                phone=phone,
                message="OTP verified. User authenticated.",
            )

        logger.info("New user created: %s. Account: %s", masked, resolved.account_id)
        if outcome.email:
            self._tasks.spawn(
                self._email_service.send_welcome(outcome.email, outcome.name),
                name=f"welcome-email-{resolved.account_id}",
            )
            logger.info("Welcome email queued for %s", mask_email(outcome.email))

        return VerificationSuccess(
            is_new_account=True,
            account_id=resolved.account_id,
            credential=credential,
            phone=phone,
            message="OTP verified. Please create a password.",
            name=outcome.name,
            email=outcome.email,
        )
