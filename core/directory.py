"""
core/directory.py -- HTTP client for the external booking directory.

The directory is the system of record for customers and bookings. It speaks
JSON:API: every resource arrives as {"id": ..., "attributes": {...}} inside a
top-level "data" member (an object for /resource/{id}, a list for filters).

Failure classes stay distinct because callers message and retry differently:
  404 / empty result        -> None (not-found; the caller decides what it means)
  5xx, timeout, no route    -> ServiceUnavailable (retryable, 503)
  401 / other 4xx / garbage -> DirectoryError (our fault: bad key or bad request)

The blocking requests call runs in a worker thread (asyncio.to_thread) so a
slow directory stalls only the request waiting on it, never the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote, urljoin

import requests

from core.errors import DirectoryError, ServiceUnavailable
from core.models import Booking, Customer

logger = logging.getLogger("rentalportal.directory")


class BookingDirectory:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        # Shared session for connection pooling. max_redirects=3 replaces the
        # requests default of 30 -- the directory has no business redirecting.
        self._session = session or requests.Session()
        self._session.max_redirects = 3
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def find_order_by_number(self, number: str) -> Optional[Booking]:
        payload = await asyncio.to_thread(self._get, "orders", {"filter[number]": number})
        items = _data_list(payload)
        return _to_booking(items[0]) if items else None

    async def find_customer_by_id(self, customer_id: str) -> Optional[Customer]:
        payload = await asyncio.to_thread(self._get, f"customers/{quote(str(customer_id), safe='')}")
        item = (payload or {}).get("data")
        return _to_customer(item) if isinstance(item, dict) else None

    async def find_customer_by_email(self, email: str) -> Optional[Customer]:
        payload = await asyncio.to_thread(self._get, "customers", {"filter[email]": email})
        items = _data_list(payload)
        return _to_customer(items[0]) if items else None

    async def list_bookings_by_customer(self, customer_id: str) -> list[Booking]:
        payload = await asyncio.to_thread(
            self._get,
            "orders",
            {
                "filter[customer_id]": customer_id,
                "sort[]": "-created_at",
                "include[]": "lines,customer",
            },
        )
        return [_to_booking(item) for item in _data_list(payload)]

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _get(self, path: str, params: Optional[dict[str, str]] = None) -> Optional[dict[str, Any]]:
        """GET a directory resource. Returns the decoded body, or None on 404."""
        url = urljoin(self._base_url, path)
        logger.debug("Directory request GET %s", path)
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("Directory unreachable for %s: %s", path, e)
            raise ServiceUnavailable(detail=type(e).__name__) from e
        except requests.RequestException as e:
            logger.error("Directory request failed for %s: %s", path, e)
            raise DirectoryError(detail=type(e).__name__) from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 500:
            logger.warning("Directory returned %d for %s", resp.status_code, path)
            raise ServiceUnavailable(detail=f"directory status {resp.status_code}")
        if resp.status_code >= 400:
            # 401 means our API key is wrong -- an operator problem, not the user's.
            logger.error("Directory rejected %s with %d", path, resp.status_code)
            raise DirectoryError(detail=f"directory status {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            logger.error("Directory returned a non-JSON body for %s", path)
            raise DirectoryError(detail="invalid JSON from directory") from e


# ---------------------------------------------------------------------------
# JSON:API -> dataclass mappers
# ---------------------------------------------------------------------------


def _data_list(payload: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    data = (payload or {}).get("data") or []
    return data if isinstance(data, list) else [data]


def _to_customer(item: dict[str, Any]) -> Customer:
    attrs = item.get("attributes") or {}
    return Customer(
        id=str(item.get("id", "")),
        email=attrs.get("email") or "",
        first_name=attrs.get("first_name") or "",
        last_name=attrs.get("last_name") or "",
        phone=attrs.get("phone"),
        properties=attrs.get("properties"),
        created_at=attrs.get("created_at"),
        updated_at=attrs.get("updated_at"),
    )


def _to_booking(item: dict[str, Any]) -> Booking:
    attrs = item.get("attributes") or {}
    embedded = attrs.get("customer")
    customer_id = attrs.get("customer_id")
    return Booking(
        id=str(item.get("id", "")),
        number=str(attrs.get("number", "")),
        customer_id=str(customer_id) if customer_id is not None else None,
        status=attrs.get("status") or "",
        starts_at=attrs.get("starts_at"),
        stops_at=attrs.get("stops_at"),
        total_in_cents=attrs.get("total_in_cents") or 0,
        deposit_in_cents=attrs.get("deposit_in_cents") or 0,
        grand_total_in_cents=attrs.get("grand_total_in_cents") or 0,
        price_in_cents=attrs.get("price_in_cents") or 0,
        total_paid_in_cents=attrs.get("total_paid_in_cents") or 0,
        to_be_paid_in_cents=attrs.get("to_be_paid_in_cents") or 0,
        properties=attrs.get("properties"),
        lines=attrs.get("lines") or [],
        customer=_to_customer({"id": customer_id, "attributes": embedded}) if embedded else None,
        created_at=attrs.get("created_at"),
        updated_at=attrs.get("updated_at"),
    )
