"""
CardLink Backend — Email Service Tests
========================================

What we test:
    ✅ Sent / failed / skipped outcomes, never an exception
    ✅ vCard-ready message addressed to the client with the admin copied
"""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from cardlink.config import settings
from cardlink.services.email_service import EmailService


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.test")
    monkeypatch.setattr(settings, "smtp_user", "cards@test")
    monkeypatch.setattr(settings, "smtp_password", "secret")
    monkeypatch.setattr(settings, "admin_email", "admin@cards.test")


def make_client(**overrides):
    fields = {
        "id": uuid.uuid4(),
        "slug": "jane-doe",
        "full_name": "Jane Doe",
        "company": "Acme",
        "email1": "jane@x.com",
        "phone1": "555-1000",
        "vcard_url": "https://cdn.test/vcards/jane-doe.vcf",
        "qr_code_url": "https://cdn.test/qr/jane-doe",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestVCardReadyEmail:

    def setup_method(self):
        self.service = EmailService()

    @pytest.mark.asyncio
    async def test_sent(self, smtp_configured):
        with patch("cardlink.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await self.service.send_vcard_ready(make_client())

        assert result.status == "sent"
        assert result.sent
        message = send.await_args.args[0]
        assert message["To"] == "jane@x.com"
        assert message["Cc"] == "admin@cards.test"
        assert "profile/jane-doe" in message.get_content()
        assert send.await_args.kwargs["hostname"] == "smtp.test"

    @pytest.mark.asyncio
    async def test_smtp_failure_reported_not_raised(self, smtp_configured):
        with patch(
            "cardlink.services.email_service.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=ConnectionRefusedError("smtp down"),
        ):
            result = await self.service.send_vcard_ready(make_client())

        assert result.status == "failed"
        assert "smtp down" in result.error

    @pytest.mark.asyncio
    async def test_no_client_email_skipped(self, smtp_configured):
        with patch("cardlink.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await self.service.send_vcard_ready(make_client(email1=None))

        assert result.status == "skipped"
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unconfigured_smtp_skipped(self, monkeypatch):
        monkeypatch.setattr(settings, "smtp_host", "")
        with patch("cardlink.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await self.service.send_vcard_ready(make_client())

        assert result.status == "skipped"
        send.assert_not_awaited()


class TestNewSubmissionEmail:

    @pytest.mark.asyncio
    async def test_sent_to_admin(self, smtp_configured):
        with patch("cardlink.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await EmailService().send_new_submission(make_client())

        assert result.status == "sent"
        assert send.await_args.args[0]["To"] == "admin@cards.test"

    @pytest.mark.asyncio
    async def test_multiline_name_kept_out_of_subject(self, smtp_configured):
        with patch("cardlink.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await EmailService().send_new_submission(make_client(full_name="Jane\r\nDoe"))

        assert result.status == "sent"
        assert send.await_args.args[0]["Subject"] == "New client submission: Jane Doe"

    @pytest.mark.asyncio
    async def test_unbuildable_message_reported_not_raised(self, smtp_configured):
        client = make_client(email1="jane@x.com\nBcc: someone@else.test")

        with patch("cardlink.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await EmailService().send_vcard_ready(client)

        assert result.status == "failed"
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_admin_address_skipped(self, monkeypatch):
        monkeypatch.setattr(settings, "admin_email", "")
        result = await EmailService().send_new_submission(make_client())

        assert result.status == "skipped"
