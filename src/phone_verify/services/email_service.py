"""Email service — welcome emails for newly verified accounts."""

from __future__ import annotations

import logging
import time
from email.message import EmailMessage
from email.utils import make_msgid

import aiosmtplib

from phone_verify.config import Settings, settings as default_settings
from phone_verify.services.masking import mask_email

logger = logging.getLogger(__name__)

WELCOME_TEMPLATE = (
    "Hello {name},\n\n"
    "Your phone number has been verified and your {app} account is ready.\n\n"
    "If you did not create this account, please contact support immediately.\n\n"
    "Best regards,\n"
    "The {app} Team"
)


class EmailService:
    """Sends transactional emails over async SMTP.

    With no ``SMTP_HOST`` configured the service runs in test mode: the
    (masked) recipient is logged and nothing leaves the process.
    """

    def __init__(self, config: Settings = default_settings) -> None:
        self._config = config

    @property
    def test_mode(self) -> bool:
        return not self._config.smtp_host

    async def send_welcome(self, to_email: str, user_name: str | None) -> str:
        """Send the welcome email and return its Message-ID."""
        app = self._config.app_name
        msg = EmailMessage()
        msg["Subject"] = f"Welcome to {app}"
        msg["From"] = self._config.email_from
        msg["To"] = to_email
        msg["Message-ID"] = make_msgid(domain=self._config.email_from.partition("@")[2] or None)
        msg.set_content(WELCOME_TEMPLATE.format(name=user_name or "there", app=app))

        masked = mask_email(to_email)
        if self.test_mode:
            logger.info("TEST MODE - would send welcome email to %s", masked)
            return f"MSG_TEST_{int(time.time() * 1000)}"

        await aiosmtplib.send(
            msg,
            hostname=self._config.smtp_host,
            port=self._config.smtp_port,
            username=self._config.smtp_username or None,
            password=self._config.smtp_password or None,
            start_tls=True,
        )
        logger.info("Welcome email sent to %s", masked)
        return msg["Message-ID"]
