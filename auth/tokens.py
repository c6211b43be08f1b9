"""
auth/tokens.py -- JWT access/refresh token lifecycle.

Security design decisions:
  JWT: python-jose with HS256. Access tokens carry customerId, email, name and
       type="access"; refresh tokens carry only customerId and type="refresh".
       Both carry a random jti so every issued string is unique -- two pairs
       issued to the same customer in the same second must not collide in the
       whitelist or blacklist.

  Refresh whitelist: a refresh token is valid iff it verifies, is unexpired,
       AND is present in SessionStore's whitelist. Rotation swaps old for new
       in one locked step (SessionStore.rotate_refresh_token); whoever loses a
       concurrent race on the same token gets InvalidRefreshToken.

  Access blacklist: checked BEFORE the signature, so a revoked token reports
       TokenRevoked even while it would otherwise verify. Entries remember the
       token's own exp (capped at one access lifetime) so the sweep can prune
       them once they are moot. Tokens we did not sign are never recorded.

  The type claim is enforced on both paths: a refresh token presented as an
       access token (or vice versa) is rejected.

Layer rule: no imports from api/. Imports from core/ are allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import AccessClaims, CustomerData, TokenPair
from auth.store import SessionStore
from core.errors import InvalidRefreshToken, InvalidToken, TokenExpired, TokenRevoked

logger = logging.getLogger("rentalportal.auth")

_ALGORITHM = "HS256"


class TokenService:
    def __init__(
        self,
        store: SessionStore,
        secret_key: str,
        access_expire_seconds: int = 24 * 60 * 60,
        refresh_expire_seconds: int = 7 * 24 * 60 * 60,
    ) -> None:
        self._store = store
        self._secret_key = secret_key
        self.access_expire_seconds = access_expire_seconds
        self.refresh_expire_seconds = refresh_expire_seconds

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, customer: CustomerData) -> TokenPair:
        """Sign a fresh access/refresh pair and whitelist the refresh token."""
        pair = self._sign_pair(customer)
        self._store.add_refresh_token(pair.refresh_token)
        return pair

    def rotate(self, old_refresh_token: str, customer: CustomerData) -> TokenPair:
        """Exchange a verified refresh token for a new pair.

        The old token is removed and the new one added under one lock. If the
        old token is already gone (a concurrent refresh or a logout got there
        first) nothing is whitelisted and InvalidRefreshToken is raised.
        """
        pair = self._sign_pair(customer)
        if not self._store.rotate_refresh_token(old_refresh_token, pair.refresh_token):
            raise InvalidRefreshToken()
        return pair

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> AccessClaims:
        """Return the claims of a valid access token.

        Raises TokenRevoked (blacklisted), TokenExpired, or InvalidToken for
        any other failure: bad signature, malformed token, wrong type, missing
        customerId.
        """
        if self._store.is_blacklisted(token):
            raise TokenRevoked()
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidToken() from exc
        if payload.get("type") != "access" or not payload.get("customerId"):
            raise InvalidToken()
        return AccessClaims(
            customer_id=str(payload["customerId"]),
            email=payload.get("email", ""),
            name=payload.get("name", ""),
            expires_at=int(payload["exp"]),
        )

    def verify_refresh(self, token: str) -> str:
        """Return the customer id of a whitelisted, valid refresh token.

        The whitelist check comes first: a token that was rotated away or
        logged out is rejected without spending a signature check on it.
        """
        if not self._store.has_refresh_token(token):
            raise InvalidRefreshToken()
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            # Covers expiry too -- an expired refresh token is just invalid.
            self._store.remove_refresh_token(token)
            raise InvalidRefreshToken() from exc
        if payload.get("type") != "refresh" or not payload.get("customerId"):
            raise InvalidRefreshToken()
        return str(payload["customerId"])

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    def revoke(self, access_token: str) -> bool:
        """Blacklist an access token until its own expiry. Returns False if skipped.

        Only tokens carrying our signature are blacklisted; anything else can
        never authenticate, so recording it would only let a caller grow the
        blacklist. Expiry is not checked here (an expired token is still ours),
        and the stored exp is capped at one access lifetime from now so the
        sweep always gets to prune the entry.
        """
        try:
            payload = jwt.decode(
                access_token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            logger.info("Revoke skipped: token not signed by us")
            return False
        latest = datetime.now(timezone.utc).timestamp() + self.access_expire_seconds
        try:
            expires_at = min(float(payload["exp"]), latest)
        except (KeyError, TypeError, ValueError):
            expires_at = latest
        self._store.blacklist_access_token(access_token, expires_at)
        return True

    def revoke_refresh(self, refresh_token: str) -> bool:
        return self._store.remove_refresh_token(refresh_token)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def _sign_pair(self, customer: CustomerData) -> TokenPair:
        access_token = self._sign(
            {
                "customerId": customer.id,
                "email": customer.email,
                "name": customer.name,
                "type": "access",
            },
            self.access_expire_seconds,
        )
        refresh_token = self._sign(
            {"customerId": customer.id, "type": "refresh"},
            self.refresh_expire_seconds,
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.access_expire_seconds,
        )

    def _sign(self, claims: dict, lifetime_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + timedelta(seconds=lifetime_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)
