"""Email send channels."""

from revwave_core.providers.email.base import (
    OutgoingEmail,
    SendChannel,
    SendOutcome,
    append_unsubscribe_link,
    build_mime_message,
)
from revwave_core.providers.email.smtp import SmtpChannel

__all__ = [
    "OutgoingEmail",
    "SendChannel",
    "SendOutcome",
    "SmtpChannel",
    "append_unsubscribe_link",
    "build_mime_message",
]
