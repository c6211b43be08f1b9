"""
auth/models.py -- Domain dataclasses for session entities.

Pattern: Data class (pure data container, zero logic). Services do the work;
routes map these onto the Pydantic response models in api/models.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.models import Booking


@dataclass
class CustomerData:
    """The customer identity returned to the client after a successful login.

    bookings is empty on token refresh -- the client already has them, and a
    refresh should not pay for a directory listing.
    """

    id: str
    email: str
    name: str
    phone: str | None = None
    bookings: list[Booking] = field(default_factory=list)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access-token lifetime in seconds


@dataclass
class AuthResult:
    customer: CustomerData
    tokens: TokenPair


@dataclass
class MagicLink:
    """A pending single-use login link. expires_at is a POSIX timestamp."""

    token: str
    email: str
    expires_at: float


@dataclass
class AccessClaims:
    """Identity embedded in a verified access token.

    Served by "who am I" without a directory round-trip, so profile edits only
    show up after the next login or refresh.
    """

    customer_id: str
    email: str
    name: str
    expires_at: int
