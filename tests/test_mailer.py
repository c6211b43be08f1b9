"""Unit tests for auth/mailer.py. smtplib is patched; nothing leaves the process."""

from __future__ import annotations

import asyncio
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from auth.mailer import EmailDispatcher
from core.errors import EmailSendFailed

URL = "https://portal.example.test/auth/magic-link?token=abc"


def _configured(**overrides) -> EmailDispatcher:
    options = {
        "smtp_host": "smtp.example.test",
        "smtp_user": "mailer",
        "smtp_password": "hunter2",
        "from_email": "noreply@example.test",
    }
    options.update(overrides)
    return EmailDispatcher(**options)


def test_unconfigured_dispatcher_logs_instead_of_sending(caplog):
    mailer = EmailDispatcher(smtp_host="")
    assert not mailer.is_configured
    with patch("auth.mailer.smtplib.SMTP") as smtp, caplog.at_level("INFO", logger="rentalportal.mailer"):
        asyncio.run(mailer.send_magic_link("maria.ostos97@gmail.com", URL, 15))
    smtp.assert_not_called()
    assert URL in caplog.text


def test_starttls_send():
    mailer = _configured()
    server = MagicMock()
    with patch("auth.mailer.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        asyncio.run(mailer.send_magic_link("maria.ostos97@gmail.com", URL, 15))

    smtp.assert_called_once_with("smtp.example.test", 587, timeout=30.0)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "hunter2")
    from_addr, to_addrs, body = server.sendmail.call_args.args
    assert from_addr == "noreply@example.test"
    assert to_addrs == ["maria.ostos97@gmail.com"]
    assert "Your Canary Ride Login Link" in body


def test_implicit_tls_send():
    mailer = _configured(smtp_use_tls=False, smtp_port=465)
    server = MagicMock()
    with patch("auth.mailer.smtplib.SMTP_SSL") as smtp_ssl:
        smtp_ssl.return_value.__enter__.return_value = server
        asyncio.run(mailer.send("maria.ostos97@gmail.com", "Hi", "<p>hi</p>"))
    smtp_ssl.assert_called_once()
    server.starttls.assert_not_called()
    server.sendmail.assert_called_once()


@pytest.mark.parametrize(
    "error",
    [smtplib.SMTPAuthenticationError(535, b"bad credentials"), ConnectionRefusedError("refused")],
)
def test_delivery_failure_raises_email_send_failed(error):
    mailer = _configured()
    with patch("auth.mailer.smtplib.SMTP", side_effect=error):
        with pytest.raises(EmailSendFailed):
            asyncio.run(mailer.send_magic_link("maria.ostos97@gmail.com", URL, 15))
