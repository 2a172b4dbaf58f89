"""Gmail API send channel using the tenant's OAuth integration.

Messages are serialized as RFC 822, base64url encoded without padding and
POSTed to users.messages.send. Sends are attempted once: a retried send
could deliver the same email twice.
"""

import base64
import logging
from typing import TYPE_CHECKING, Optional

from revwave_core.domain.errors import ClientError, ExhaustedRetries
from revwave_core.providers.email.base import OutgoingEmail, SendOutcome, build_mime_message
from revwave_core.providers.google.client import ApiClient

if TYPE_CHECKING:
    from revwave_core.domain.services.tokens import TokenManager

logger = logging.getLogger(__name__)

GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


def encode_raw_message(email: OutgoingEmail) -> str:
    """RFC 822 bytes of the email, base64url encoded with padding stripped."""
    raw = build_mime_message(email).as_bytes()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class GmailOAuthChannel:
    """Sends email from the tenant's connected Gmail account."""

    name = "gmail_oauth"

    def __init__(
        self,
        tenant_id: str,
        token_manager: "TokenManager",
        api: Optional[ApiClient] = None,
        timeout: float = 30.0,
    ):
        self.tenant_id = tenant_id
        self.token_manager = token_manager
        self.api = api or ApiClient(timeout=timeout, max_attempts=1)

    async def send(self, email: OutgoingEmail) -> SendOutcome:
        """Send one email.

        Token errors propagate to the caller; delivery errors become a
        failed SendOutcome.
        """
        access_token = await self.token_manager.get_access_token(self.tenant_id)

        try:
            response = await self.api.request(
                GMAIL_SEND_URL,
                access_token,
                method="POST",
                json={"raw": encode_raw_message(email)},
            )
        except (ClientError, ExhaustedRetries) as e:
            logger.error(f"Gmail API send to {email.to} failed: {e}")
            return SendOutcome(success=False, error_message=str(e))

        message_id = response.json().get("id") if response.content else None
        logger.info(f"Email sent via Gmail API to {email.to} (message ID: {message_id})")
        return SendOutcome(success=True, message_id=message_id)
