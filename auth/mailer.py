"""
auth/mailer.py -- Outbound email for magic links.

SMTP via the standard library, STARTTLS on 587 or implicit TLS (smtp_use_tls
False, typically port 465). When no SMTP host is configured (local dev) the
message is logged instead of sent, so the magic-link flow works end to end
without a mail server.

Every delivery failure surfaces as EmailSendFailed. The magic-link flow
catches it and still answers 200 -- the requester must not learn anything
from the response -- so the log line here is the only trace of the failure.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from core.errors import EmailSendFailed
from core.redact import mask_email

logger = logging.getLogger("rentalportal.mailer")


class EmailDispatcher:
    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "noreply@canaryride.com",
        from_name: str = "Canary Ride",
        timeout: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> None:
        """Deliver one message. Raises EmailSendFailed on any SMTP or network error."""
        await asyncio.to_thread(self._send_sync, to, subject, html, text)

    async def send_magic_link(self, to: str, url: str, expires_minutes: int) -> None:
        subject = "Your Canary Ride Login Link"
        html = _MAGIC_LINK_HTML.format(url=url, minutes=expires_minutes)
        text = _MAGIC_LINK_TEXT.format(url=url, minutes=expires_minutes)
        await self.send(to, subject, html, text)

    def _send_sync(self, to: str, subject: str, html: str, text: str | None) -> None:
        if not self.is_configured:
            # Dev mode: log the message instead of sending it.
            logger.info("Email (dev mode, not sent) to=%s subject=%r\n%s", mask_email(to), subject, text or html)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        if text:
            msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.sendmail(self.from_email, [to], msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    self._login(server)
                    server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Failed to send email to=%s subject=%r: %s: %s",
                mask_email(to),
                subject,
                type(exc).__name__,
                exc,
            )
            raise EmailSendFailed(detail=type(exc).__name__) from exc

        logger.info("Email sent to=%s subject=%r", mask_email(to), subject)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_MAGIC_LINK_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>Canary Ride - Login Link</title>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background-color: #ff6b35; color: white; padding: 20px; text-align: center; }}
    .button {{ display: inline-block; padding: 12px 24px; background-color: #ff6b35;
               color: white; text-decoration: none; border-radius: 5px; margin: 20px 0; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>Canary Ride</h1></div>
    <h2>Access Your Bookings</h2>
    <p>Click the button below to securely access your Canary Ride bookings:</p>
    <p style="text-align: center;"><a href="{url}" class="button">Access My Bookings</a></p>
    <p><strong>This link expires in {minutes} minutes</strong> and can be used once.</p>
    <p>If you didn't request this link, you can safely ignore this email.</p>
    <p style="word-break: break-all; font-size: 12px; color: #666;">{url}</p>
  </div>
</body>
</html>
"""

_MAGIC_LINK_TEXT = """\
Canary Ride - Access Your Bookings

Open the link below to securely access your Canary Ride bookings:
{url}

This link expires in {minutes} minutes and can be used once.

If you didn't request this link, you can safely ignore this email.
"""
