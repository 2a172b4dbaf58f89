"""Send channel interface and message composition.

A SendChannel delivers one OutgoingEmail and reports a SendOutcome. The
campaign pipeline picks one channel per dispatch run:

- SmtpChannel: shared SMTP credentials from settings
- GmailOAuthChannel: the tenant's own Gmail account via OAuth
"""

from dataclasses import dataclass
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Optional, Protocol


@dataclass
class OutgoingEmail:
    """A fully composed email ready for a channel."""

    to: str
    subject: str
    html: str
    from_email: str
    from_name: Optional[str] = None


@dataclass
class SendOutcome:
    """Result of a single send attempt."""

    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None


class SendChannel(Protocol):
    """Capability to deliver an email."""

    name: str

    async def send(self, email: OutgoingEmail) -> SendOutcome:
        ...


def unsubscribe_url(web_app_url: str, token: str) -> str:
    return f"{web_app_url.rstrip('/')}/unsubscribe/{token}"


def append_unsubscribe_link(html: str, web_app_url: str, token: str) -> str:
    """Append the unsubscribe footer for a recipient's token to an HTML body."""
    url = escape(unsubscribe_url(web_app_url, token), quote=True)
    footer = (
        '<div style="margin-top: 20px; padding-top: 20px; border-top: 1px solid #eee; '
        'font-size: 12px; color: #666;">'
        f'<p>Don\'t want to receive these emails? <a href="{url}">Unsubscribe</a></p>'
        "</div>"
    )
    return html + footer


def build_mime_message(email: OutgoingEmail) -> EmailMessage:
    """Build the RFC 822 message (From/To/Subject/MIME headers + HTML body)."""
    message = EmailMessage()
    if email.from_name:
        message["From"] = Address(display_name=email.from_name, addr_spec=email.from_email)
    else:
        message["From"] = email.from_email
    message["To"] = email.to
    message["Subject"] = email.subject
    message["Message-ID"] = make_msgid(domain=email.from_email.rpartition("@")[2] or None)
    message.set_content(email.html, subtype="html", charset="utf-8")
    return message
