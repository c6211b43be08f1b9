"""
core/redact.py -- Masking helpers for log lines.

Emails, booking numbers and bearer secrets are PII or credentials. They are
never logged in full; these helpers keep just enough to correlate log lines.
"""

from __future__ import annotations


def mask_email(email: str) -> str:
    """Return "ma***@example.com" style output. Non-addresses become "redacted"."""
    if "@" not in email:
        return "redacted"
    local, domain = email.rsplit("@", 1)
    return f"{local[:2]}***@{domain}"


def mask_booking(booking_number: str) -> str:
    return f"{booking_number[:3]}***"


def mask_token(token: str) -> str:
    # 10 hex chars is 40 bits -- enough to correlate, useless for replay.
    return f"{token[:10]}***"
