"""
auth/verifier.py -- Confirms a claimed identity against the booking directory.

verify_booking() is the credential check behind booking-number login: the
booking must exist AND its owning customer's email must match the supplied
email case-insensitively. Any mismatch is indistinguishable from a missing
booking (None) so the login error cannot reveal which booking
numbers exist.

Directory outages are NOT folded into None. ServiceUnavailable propagates
unchanged so the caller answers 503 (retry) instead of 401 (wrong details).

Reads go through the TTLCache. Verified bookings are keyed by
booking:{number}:{email}; customers by id and by email. Booking lists are
never cached -- they change as the customer books.
"""

from __future__ import annotations

import logging

from cache.store import TTLCache
from core.directory import BookingDirectory
from core.models import Booking, Customer
from core.redact import mask_booking, mask_email

logger = logging.getLogger("rentalportal.auth")


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialVerifier:
    def __init__(self, directory: BookingDirectory, cache: TTLCache) -> None:
        self._directory = directory
        self._cache = cache

    async def verify_booking(self, booking_number: str, email: str) -> Booking | None:
        """Return the booking, with its customer attached, iff it belongs to email."""
        number = booking_number.strip()
        key = f"booking:{number}:{_normalize_email(email)}"
        return await self._cache.get_or_set(key, lambda: self._lookup_booking(number, email))

    async def get_customer_by_email(self, email: str) -> Customer | None:
        normalized = _normalize_email(email)
        return await self._cache.get_or_set(
            f"customer-email:{normalized}",
            lambda: self._directory.find_customer_by_email(normalized),
        )

    async def get_customer_by_id(self, customer_id: str, fresh: bool = False) -> Customer | None:
        """Look up a customer by id. fresh=True bypasses the cache and refreshes it."""
        key = f"customer:{customer_id}"
        if fresh:
            customer = await self._directory.find_customer_by_id(customer_id)
            if customer is None:
                self._cache.delete(key)
            else:
                self._cache.set(key, customer)
            return customer
        return await self._cache.get_or_set(key, lambda: self._directory.find_customer_by_id(customer_id))

    async def list_bookings(self, customer_id: str) -> list[Booking]:
        return await self._directory.list_bookings_by_customer(customer_id)

    async def _lookup_booking(self, number: str, email: str) -> Booking | None:
        booking = await self._directory.find_order_by_number(number)
        if booking is None or not booking.customer_id:
            logger.info("Booking %s not found", mask_booking(number))
            return None

        customer = await self.get_customer_by_id(booking.customer_id)
        if customer is None or _normalize_email(customer.email) != _normalize_email(email):
            logger.info("Booking %s does not belong to %s", mask_booking(number), mask_email(email))
            return None

        booking.customer = customer
        return booking
