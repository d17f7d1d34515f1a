"""Email service — renders and sends verification emails via async SMTP."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol
from urllib.parse import urlencode

import aiosmtplib

from otp_auth.config import settings
from otp_auth.errors import DeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailRecipient:
    email: str
    name: str = ""


@dataclass
class DeliveryReceipt:
    """What the SMTP server told us after accepting a message."""

    recipient: str
    response: str = ""
    refused: dict[str, str] = field(default_factory=dict)


class MailSender(Protocol):
    """Services depend on this, not on a concrete transport."""

    async def send(
        self, to: MailRecipient, subject: str, html_body: str
    ) -> DeliveryReceipt: ...


class SmtpMailSender:
    """Sends transactional emails using the configured SMTP server."""

    async def send(
        self, to: MailRecipient, subject: str, html_body: str
    ) -> DeliveryReceipt:
        """Send an HTML email to *to*.

        Raises
        ------
        DeliveryError
            If the SMTP server cannot be reached or rejects the message.
        """
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((settings.email_from_name, settings.email_from))
        msg["To"] = formataddr((to.name, to.email)) if to.name else to.email
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(html_body, subtype="html")

        logger.info("Sending %r email to %s", subject, to.email)

        try:
            refused, response = await aiosmtplib.send(
                msg,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                start_tls=settings.smtp_start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed: %s", to.email, type(exc).__name__)
            raise DeliveryError(f"smtp: {type(exc).__name__}") from exc

        logger.info("Email sent to %s", to.email)
        return DeliveryReceipt(
            recipient=to.email,
            response=response,
            refused={addr: str(reply) for addr, reply in refused.items()},
        )


# ── Templates ────────────────────────────────────────────

def render_minimal_template(title: str, content: str) -> str:
    """Wrap *content* (trusted HTML) in a plain, centered email layout."""
    return f"""\
<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>{html.escape(title)}</title>
  </head>
  <body style="margin: 0; padding: 0; background-color: #ffffff; font-family: Arial, sans-serif; color: #333333;">
    <div style="max-width: 560px; margin: 0 auto; padding: 32px 24px;">
      <h1 style="font-size: 22px; font-weight: 600; margin: 0 0 24px;">{html.escape(title)}</h1>
      {content}
      <p style="font-size: 12px; color: #999999; margin-top: 32px;">{html.escape(settings.app_name)}</p>
    </div>
  </body>
</html>
"""


def verification_link(email: str, code: str, app_url: str | None = None) -> str:
    """Build the link that verifies *email* with *code* in one click."""
    base = (app_url or settings.app_url).rstrip("/")
    query = urlencode({"email": email, "otp": code, "sent": "true"})
    return f"{base}/auth/verify?{query}"


def build_verification_email(
    email: str, code: str, ttl_minutes: int = 10, app_url: str | None = None
) -> tuple[str, str]:
    """Return ``(subject, html_body)`` for a passcode email."""
    link = html.escape(verification_link(email, code, app_url), quote=True)
    content = f"""\
<p>Your one-time verification code is:</p>
      <div style="text-align: center; margin: 25px 0;">
        <div style="font-size: 32px; font-weight: bold; letter-spacing: 5px; padding: 12px 24px; background-color: #f7f7f7; display: inline-block; border-radius: 4px;">{html.escape(code)}</div>
        <br />
        <a href="{link}" style="display: inline-block; padding: 12px 24px; background-color: #1a74e4; color: white; text-decoration: none; border-radius: 4px; font-weight: 500; margin: 20px 0;">Verify Email</a>
      </div>
      <p>This code will expire in {ttl_minutes} minutes.</p>
      <p>If you didn't request this code, please ignore this email.</p>"""
    return "Email Verification Code", render_minimal_template("Email Verification", content)
