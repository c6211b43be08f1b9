"""
API request and response models for the rental portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
core/models.py, which own the internal domain representation. Route handlers
map between the two with the to_*_response helpers below.

Separation of concerns: auth/ + core/ models = domain truth; api/ models = API contract.
"""

from dataclasses import asdict
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import AccessClaims, AuthResult, CustomerData, TokenPair
from core.models import Booking

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: the directory is the authority on which addresses exist.
# This only rejects input that cannot possibly be an address.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    booking_number: str = Field(min_length=1, max_length=64)
    email: str = Field(max_length=254, pattern=EMAIL_PATTERN)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class MagicLinkRequest(BaseModel):
    """Request body for POST /api/v1/auth/magic-link."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=254, pattern=EMAIL_PATTERN)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: str = Field(min_length=1, max_length=4096)


class LogoutRequest(BaseModel):
    """Optional body for POST /api/v1/auth/logout.

    Sending the refresh token revokes it together with the access token in the
    Authorization header. Without it the refresh token stays valid until its
    own expiry.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: Optional[str] = Field(default=None, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class BookingSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    number: str
    status: str
    starts_at: Optional[str] = None
    stops_at: Optional[str] = None
    grand_total_in_cents: int = 0
    to_be_paid_in_cents: int = 0
    lines: list[dict[str, Any]] = Field(default_factory=list)


class CustomerResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    phone: Optional[str] = None
    bookings: list[BookingSummary] = Field(default_factory=list)


class TokenResponse(BaseModel):
    """Response for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginResponse(TokenResponse):
    """Response for POST /auth/login and GET /auth/magic-link/verify."""

    customer: CustomerResponse


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me -- identity as embedded in the token."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Domain -> transport mappers
# ---------------------------------------------------------------------------


def to_booking_summary(booking: Booking) -> BookingSummary:
    return BookingSummary.model_validate(asdict(booking))


def to_customer_response(customer: CustomerData) -> CustomerResponse:
    return CustomerResponse(
        id=customer.id,
        email=customer.email,
        name=customer.name,
        phone=customer.phone,
        bookings=[to_booking_summary(b) for b in customer.bookings],
    )


def to_token_response(tokens: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )


def to_login_response(result: AuthResult) -> LoginResponse:
    return LoginResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.tokens.expires_in,
        customer=to_customer_response(result.customer),
    )


def to_me_response(claims: AccessClaims) -> MeResponse:
    return MeResponse(id=claims.customer_id, email=claims.email, name=claims.name)
