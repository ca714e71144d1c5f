"""
CardLink Backend — Email Notifications
========================================

What:  Sends the "vCard ready" email to a client and the "new submission"
       email to the admin.
Why:   Email is a side effect. A failed send is reported in the
       operation result but never fails or reverts the operation that
       triggered it.
How:   aiosmtplib over the configured SMTP transport; every public method
       returns an EmailResult and never raises.
"""

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, List, Optional

import aiosmtplib

from cardlink.config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    """Outcome of one send: status is 'sent', 'failed' or 'skipped'."""

    status: str
    recipient: Optional[str] = None
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == "sent"


def single_line(value: str) -> str:
    """Header values may not contain CR or LF; user-entered names can."""
    return " ".join(value.split())


class EmailService:

    @property
    def is_configured(self) -> bool:
        return bool(settings.smtp_host and settings.smtp_user and settings.smtp_password)

    def _build_message(self, to: str, subject: str, body: str, cc: Optional[List[str]] = None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((settings.mail_sender_name, settings.smtp_user))
        message["To"] = to
        if cc:
            message["Cc"] = ", ".join(cc)
        message["Subject"] = single_line(subject)
        message.set_content(body)
        return message

    async def _send(
        self,
        recipient: str,
        subject: str,
        body: str,
        cc: Optional[List[str]] = None,
    ) -> EmailResult:
        if not self.is_configured:
            logger.warning("SMTP not configured; skipping email to %s", recipient)
            return EmailResult(status="skipped", recipient=recipient, error="SMTP not configured")

        try:
            message = self._build_message(recipient, subject, body, cc)
            await aiosmtplib.send(
                message,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                timeout=settings.smtp_timeout,
            )
        except Exception as e:
            logger.error("Email to %s failed: %s", recipient, str(e))
            return EmailResult(status="failed", recipient=recipient, error=str(e))

        logger.info("Email '%s' sent to %s", message["Subject"], recipient)
        return EmailResult(status="sent", recipient=recipient)

    async def send_vcard_ready(self, client: Any) -> EmailResult:
        """Tell the client their digital card is live; the admin is copied."""
        recipient = client.email1
        if not recipient:
            return EmailResult(status="skipped", error="Client has no email address")

        profile_url = settings.public_profile_url(client.slug, str(client.id))
        body = (
            f"Hello {client.full_name},\n\n"
            "Your digital business card is ready.\n\n"
            f"Profile: {profile_url}\n"
            f"vCard:   {client.vcard_url}\n"
            f"QR code: {client.qr_code_url}\n\n"
            "Share the QR code or the profile link so people can save your "
            "contact details in one tap.\n\n"
            f"{settings.mail_sender_name}\n"
        )
        cc = [settings.admin_email] if settings.admin_email else None
        return await self._send(recipient, "Your digital business card is ready", body, cc)

    async def send_new_submission(self, client: Any) -> EmailResult:
        """Notify the admin that the public form produced a new pending client."""
        if not settings.admin_email:
            return EmailResult(status="skipped", error="ADMIN_EMAIL not set")

        body = (
            "A new client submission is waiting for review.\n\n"
            f"Name:    {client.full_name}\n"
            f"Company: {client.company or '-'}\n"
            f"Email:   {client.email1 or '-'}\n"
            f"Phone:   {client.phone1 or '-'}\n"
            f"ID:      {client.id}\n"
        )
        return await self._send(settings.admin_email, f"New client submission: {client.full_name}", body)


# ── Singleton Instance ────────────────────────────────────────────────────
email_service = EmailService()
