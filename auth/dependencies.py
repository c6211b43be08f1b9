"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Customers authenticate with "Authorization: Bearer <access token>". The
frontend keeps tokens itself; there is no cookie session.

try_get_bearer_token() is the soft variant (returns None when absent).
get_bearer_token() raises MissingToken. get_current_claims() verifies the
token through the SessionFacade, so blacklist, expiry and signature failures
surface as TokenRevoked / TokenExpired / InvalidToken.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import AccessClaims
from auth.session import SessionFacade
from core.errors import MissingToken


def get_sessions(request: Request) -> SessionFacade:
    return request.app.state.sessions


def try_get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def get_bearer_token(request: Request) -> str:
    """Require a bearer token. Raises MissingToken (401) if there is none."""
    token = try_get_bearer_token(request)
    if token is None:
        raise MissingToken()
    return token


def get_current_claims(request: Request) -> AccessClaims:
    """Require a valid access token and return its claims.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: AccessClaims = Depends(get_current_claims)): ...
    """
    return get_sessions(request).who_am_i(get_bearer_token(request))
