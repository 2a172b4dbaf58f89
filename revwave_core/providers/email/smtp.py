"""SMTP send channel using shared credentials."""

import logging
from typing import Optional

import aiosmtplib

from revwave_core.providers.email.base import OutgoingEmail, SendOutcome, build_mime_message

logger = logging.getLogger(__name__)


class SmtpChannel:
    """Sends email through a shared SMTP account with aiosmtplib.

    Port 465 (or secure=True) uses implicit TLS; other ports upgrade with
    STARTTLS when the server offers it.
    """

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        secure: bool = False,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.secure = secure or port == 465
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SmtpChannel":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or None,
            password=settings.smtp_password or None,
            secure=settings.smtp_secure,
            timeout=settings.api_timeout_seconds,
        )

    async def send(self, email: OutgoingEmail) -> SendOutcome:
        message = build_mime_message(email)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.secure,
                start_tls=None,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send to {email.to} failed: {e}")
            return SendOutcome(success=False, error_message=str(e) or type(e).__name__)

        logger.info(f"Email sent via SMTP to {email.to}")
        return SendOutcome(success=True, message_id=message.get("Message-ID"))
