"""
api/routes/v1/auth.py -- Customer session REST endpoints.

Routes:
  POST /api/v1/auth/login               -- booking number + email -> customer + tokens
  POST /api/v1/auth/magic-link          -- email a single-use login link; always 200
  GET  /api/v1/auth/magic-link/verify   -- redeem a link -> customer + tokens
  POST /api/v1/auth/refresh             -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout              -- revoke the bearer token (and optional refresh token)
  GET  /api/v1/auth/me                  -- identity from the bearer token's claims

Handlers stay thin: they call SessionFacade and map domain results onto
api/models.py. Failures are PortalError subclasses raised by the services and
rendered by the exception handler in api/main.py -- routes never build error
payloads themselves.

Security:
  [H2] POST /login and POST /magic-link are rate-limited per IP.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Anti-enumeration: POST /magic-link answers identically for unknown emails.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MagicLinkRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    TokenResponse,
    to_login_response,
    to_me_response,
    to_token_response,
)
from auth.dependencies import get_current_claims, get_sessions, try_get_bearer_token
from auth.models import AccessClaims
from core.config import get_settings
from core.errors import MalformedToken
from core.redact import mask_booking, mask_email, mask_token

logger = logging.getLogger("rentalportal.api")

_settings = get_settings()

# Auth policy:
# - POST /auth/login, /auth/magic-link, /auth/refresh, GET /auth/magic-link/verify: public
# - POST /auth/logout: public -- revoking whatever bearer token is presented needs no validity check
# - GET  /auth/me: requires a valid access token (get_current_claims)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
async def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Log in with a booking number and the email on that booking.

    Wrong booking number and wrong email produce the same INVALID_CREDENTIALS
    error so the endpoint cannot be used to discover booking numbers.
    """
    logger.info(
        "Login attempt booking=%s email=%s ip=%s",
        mask_booking(body.booking_number),
        mask_email(body.email),
        request.client.host if request.client else "unknown",
    )
    result = await get_sessions(request).login_with_booking(body.booking_number, body.email)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return to_login_response(result)


@router.post("/auth/magic-link", response_model=MessageResponse)
@limiter.limit(_settings.magic_link_rate_limit)  # [H2]
async def send_magic_link(
    request: Request,
    body: MagicLinkRequest,
    background_tasks: BackgroundTasks,
) -> MessageResponse:
    """Email a login link if the address belongs to a customer.

    The response is the same whether or not the address is known. The email
    goes out after the response is sent, so SMTP latency never shows in it.
    """
    logger.info(
        "Magic link requested email=%s ip=%s",
        mask_email(body.email),
        request.client.host if request.client else "unknown",
    )
    await get_sessions(request).send_magic_link(body.email, background_tasks.add_task)
    return MessageResponse(message="Magic link sent to your email if you have bookings with us.")


@router.get("/auth/magic-link/verify", response_model=LoginResponse)
async def verify_magic_link(
    request: Request,
    response: Response,
    token: Optional[str] = Query(default=None),
) -> LoginResponse:
    """Redeem a magic link. Each link works once and only within 15 minutes.

    A missing or blank token is a malformed request (400 INVALID_TOKEN), not a
    failed redemption.
    """
    if not token or not token.strip():
        raise MalformedToken()
    logger.info("Magic link verification attempt token=%s", mask_token(token))
    result = await get_sessions(request).verify_magic_link(token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return to_login_response(result)


@router.post("/auth/refresh", response_model=TokenResponse)
async def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    tokens = await get_sessions(request).refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return to_token_response(tokens)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, body: Optional[LogoutRequest] = None) -> MessageResponse:
    """Revoke the bearer access token, plus the refresh token if one is sent."""
    refresh_token = body.refresh_token if body else None
    get_sessions(request).logout(try_get_bearer_token(request), refresh_token)
    return MessageResponse(message="Logged out successfully.")


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: AccessClaims = Depends(get_current_claims)) -> MeResponse:
    """Return the identity embedded in the access token. No directory round-trip."""
    return to_me_response(claims)
