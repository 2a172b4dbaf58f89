"""Unit tests for email composition and the SMTP / Gmail send channels."""

import base64
import email
import json
from email import policy
from email.message import EmailMessage
from unittest.mock import AsyncMock, MagicMock, patch

import aiosmtplib
import httpx
import pytest

from revwave_core.domain.errors import ReconnectRequired
from revwave_core.providers.email.base import (
    OutgoingEmail,
    append_unsubscribe_link,
    build_mime_message,
    unsubscribe_url,
)
from revwave_core.providers.email.gmail import (
    GMAIL_SEND_URL,
    GmailOAuthChannel,
    encode_raw_message,
)
from revwave_core.providers.email.smtp import SmtpChannel
from revwave_core.providers.google.client import ApiClient


@pytest.fixture
def outgoing() -> OutgoingEmail:
    return OutgoingEmail(
        to="ana@example.com",
        subject="Thanks for visiting",
        html="<p>Hello Ana</p>",
        from_email="owner@cafe.example",
        from_name="Cafe",
    )


def decode_raw(raw: str) -> EmailMessage:
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded), policy=policy.default)


class TestComposition:
    """Tests for message composition helpers."""

    def test_unsubscribe_url(self):
        assert unsubscribe_url("https://app.test/", "abc") == "https://app.test/unsubscribe/abc"

    def test_append_unsubscribe_link(self):
        html = append_unsubscribe_link("<p>Body</p>", "https://app.test", "tok123")

        assert html.startswith("<p>Body</p>")
        assert 'href="https://app.test/unsubscribe/tok123"' in html
        assert "Don't want to receive these emails?" in html

    def test_mime_message_headers(self, outgoing):
        message = build_mime_message(outgoing)

        assert message["To"] == "ana@example.com"
        assert message["Subject"] == "Thanks for visiting"
        assert "owner@cafe.example" in message["From"]
        assert "Cafe" in message["From"]
        assert message["Message-ID"]
        assert message.get_content_type() == "text/html"

    def test_encode_raw_message_round_trips_envelope(self, outgoing):
        raw = encode_raw_message(outgoing)

        assert "=" not in raw
        assert "+" not in raw and "/" not in raw
        parsed = decode_raw(raw)
        assert parsed["To"] == "ana@example.com"
        assert parsed["Subject"] == "Thanks for visiting"
        assert "<p>Hello Ana</p>" in parsed.get_content()

    def test_non_ascii_subject(self, outgoing):
        outgoing.subject = "¡Gracias por tu visita! ☕"

        parsed = decode_raw(encode_raw_message(outgoing))

        assert parsed["Subject"] == "¡Gracias por tu visita! ☕"


class TestSmtpChannel:
    """Tests for the shared-credential SMTP channel."""

    @pytest.mark.asyncio
    async def test_send_success(self, outgoing):
        channel = SmtpChannel("smtp.test", 587, username="user", password="pw")

        with patch("revwave_core.providers.email.smtp.aiosmtplib.send", new=AsyncMock()) as send:
            outcome = await channel.send(outgoing)

        assert outcome.success is True
        assert outcome.message_id
        kwargs = send.call_args.kwargs
        assert kwargs["hostname"] == "smtp.test"
        assert kwargs["port"] == 587
        assert kwargs["use_tls"] is False
        assert kwargs["username"] == "user"

    @pytest.mark.asyncio
    async def test_port_465_uses_implicit_tls(self, outgoing):
        channel = SmtpChannel("smtp.test", 465)

        with patch("revwave_core.providers.email.smtp.aiosmtplib.send", new=AsyncMock()) as send:
            await channel.send(outgoing)

        assert send.call_args.kwargs["use_tls"] is True

    @pytest.mark.asyncio
    async def test_smtp_error_becomes_failed_outcome(self, outgoing):
        channel = SmtpChannel("smtp.test")
        error = aiosmtplib.SMTPRecipientsRefused([])

        with patch(
            "revwave_core.providers.email.smtp.aiosmtplib.send", new=AsyncMock(side_effect=error)
        ):
            outcome = await channel.send(outgoing)

        assert outcome.success is False
        assert outcome.error_message

    @pytest.mark.asyncio
    async def test_connection_error_becomes_failed_outcome(self, outgoing):
        channel = SmtpChannel("smtp.test")

        with patch(
            "revwave_core.providers.email.smtp.aiosmtplib.send",
            new=AsyncMock(side_effect=ConnectionRefusedError("refused")),
        ):
            outcome = await channel.send(outgoing)

        assert outcome.success is False
        assert outcome.error_message == "refused"

    def test_from_settings(self, test_settings):
        channel = SmtpChannel.from_settings(test_settings)

        assert channel.host == "smtp.test.local"
        assert channel.username == "mailer@revwave.test"
        assert channel.secure is False


class TestGmailOAuthChannel:
    """Tests for the Gmail API channel."""

    def _channel(self, statuses, seen, token_manager=None):
        script = list(statuses)

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            status = script.pop(0)
            return httpx.Response(status, json={"id": "gmail-msg-1"} if status == 200 else {})

        if token_manager is None:
            token_manager = MagicMock()
            token_manager.get_access_token = AsyncMock(return_value="gmail-token")
        api = ApiClient(max_attempts=1, transport=httpx.MockTransport(handler))
        return GmailOAuthChannel("tenant-1", token_manager, api=api)

    @pytest.mark.asyncio
    async def test_send_posts_raw_message(self, outgoing):
        seen: list[httpx.Request] = []
        channel = self._channel([200], seen)

        outcome = await channel.send(outgoing)

        assert outcome.success is True
        assert outcome.message_id == "gmail-msg-1"
        request = seen[0]
        assert str(request.url) == GMAIL_SEND_URL
        assert request.headers["Authorization"] == "Bearer gmail-token"
        parsed = decode_raw(json.loads(request.content)["raw"])
        assert parsed["To"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(self, outgoing):
        seen: list[httpx.Request] = []
        channel = self._channel([500], seen)

        outcome = await channel.send(outgoing)

        assert outcome.success is False
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_client_error_becomes_failed_outcome(self, outgoing):
        seen: list[httpx.Request] = []
        channel = self._channel([400], seen)

        outcome = await channel.send(outgoing)

        assert outcome.success is False
        assert "400" in outcome.error_message

    @pytest.mark.asyncio
    async def test_token_errors_propagate(self, outgoing):
        token_manager = MagicMock()
        token_manager.get_access_token = AsyncMock(side_effect=ReconnectRequired("revoked"))
        seen: list[httpx.Request] = []
        channel = self._channel([], seen, token_manager=token_manager)

        with pytest.raises(ReconnectRequired):
            await channel.send(outgoing)

        assert seen == []

    def test_default_client_makes_single_attempt(self):
        channel = GmailOAuthChannel("tenant-1", MagicMock())
        assert channel.api.max_attempts == 1
