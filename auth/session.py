"""
auth/session.py -- The session operations exposed to the HTTP layer.

State machine per client:

    Anonymous --login / magic link--> Authenticated
    Authenticated --access expires or is revoked--> AccessRevoked
    AccessRevoked --refresh--> Authenticated (new pair, old refresh token dead)
    any --logout / failed refresh--> Anonymous

No silent recovery: a failed refresh is terminal and the client must log in
again. Both login paths converge on _authenticate(), so the customer payload
and token issuance are identical however the customer proved who they are.
"""

from __future__ import annotations

import logging

from auth.magic_link import MagicLinkService, Scheduler
from auth.models import AccessClaims, AuthResult, CustomerData, TokenPair
from auth.tokens import TokenService
from auth.verifier import CredentialVerifier
from core.errors import CustomerNotFound, InvalidCredentials, InvalidRefreshToken
from core.models import Customer
from core.redact import mask_booking, mask_email

logger = logging.getLogger("rentalportal.auth")


class SessionFacade:
    def __init__(
        self,
        verifier: CredentialVerifier,
        magic_links: MagicLinkService,
        tokens: TokenService,
    ) -> None:
        self._verifier = verifier
        self._magic_links = magic_links
        self._tokens = tokens

    async def login_with_booking(self, booking_number: str, email: str) -> AuthResult:
        booking = await self._verifier.verify_booking(booking_number, email)
        if booking is None or booking.customer is None:
            logger.info("Login rejected for booking %s email %s", mask_booking(booking_number), mask_email(email))
            raise InvalidCredentials()

        result = await self._authenticate(booking.customer)
        logger.info(
            "Successful login customer=%s booking=%s email=%s",
            result.customer.id,
            mask_booking(booking_number),
            mask_email(email),
        )
        return result

    async def send_magic_link(self, email: str, schedule: Scheduler | None = None) -> None:
        """Issue a magic link for email. Delivery runs later via schedule; see MagicLinkService.send."""
        await self._magic_links.send(email, schedule)

    async def verify_magic_link(self, token: str) -> AuthResult:
        email = self._magic_links.redeem(token)
        customer = await self._verifier.get_customer_by_email(email)
        if customer is None:
            # Customer deleted between send and click; the link is already spent.
            raise CustomerNotFound()

        result = await self._authenticate(customer)
        logger.info("Magic link verified customer=%s email=%s", customer.id, mask_email(email))
        return result

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token into a new pair.

        Order matters: the customer is fetched BEFORE the whitelist swap, so a
        directory outage (ServiceUnavailable) leaves the old token valid for a
        retry. The swap itself is the atomic gate; of two concurrent refreshes
        with the same token exactly one succeeds.
        """
        customer_id = self._tokens.verify_refresh(refresh_token)
        customer = await self._verifier.get_customer_by_id(customer_id, fresh=True)
        if customer is None:
            self._tokens.revoke_refresh(refresh_token)
            logger.warning("Refresh rejected: customer %s no longer exists", customer_id)
            raise InvalidRefreshToken()

        pair = self._tokens.rotate(refresh_token, _customer_data(customer))
        logger.info("Token refreshed customer=%s", customer_id)
        return pair

    def logout(self, access_token: str | None, refresh_token: str | None = None) -> None:
        """Revoke whichever tokens were presented. Never fails -- logout is always honoured."""
        access_revoked = bool(access_token) and self._tokens.revoke(access_token)
        refresh_revoked = bool(refresh_token) and self._tokens.revoke_refresh(refresh_token)
        logger.info("Logged out (access revoked=%s, refresh revoked=%s)", access_revoked, refresh_revoked)

    def who_am_i(self, access_token: str) -> AccessClaims:
        return self._tokens.verify_access(access_token)

    async def _authenticate(self, customer: Customer) -> AuthResult:
        bookings = await self._verifier.list_bookings(customer.id)
        data = _customer_data(customer, bookings)
        return AuthResult(customer=data, tokens=self._tokens.issue(data))


def _customer_data(customer: Customer, bookings: list | None = None) -> CustomerData:
    return CustomerData(
        id=customer.id,
        email=customer.email,
        name=customer.full_name,
        phone=customer.phone,
        bookings=bookings or [],
    )
