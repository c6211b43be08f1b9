"""
tests/conftest.py -- Shared test fixtures for the rental portal.

This module provides:
  - FakeClock: a settable time source for cache and magic-link expiry
  - FakeDirectory: an in-memory booking directory seeded with booking 6004
    for maria.ostos97@gmail.com, with call counters and an outage switch
  - RecordingMailer: captures outgoing magic-link emails instead of sending
  - service fixtures (store, cache, verifier, tokens, magic_links, sessions)
    wired exactly as api.main.wire_services wires them
  - api_client: TestClient whose lifespan wires the real services around the
    fakes, bypassing the real directory and SMTP

The env vars must be set before any core/api import so get_settings() runs
in dev mode (auto-generated SECRET_KEY) and rate limits never trip in tests.

Async services are driven with asyncio.run() from plain test functions.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress
from dataclasses import replace
from urllib.parse import parse_qs, urlparse

# CRITICAL: set before any core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DIRECTORY_API_KEY", "test-directory-key")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("MAGIC_LINK_RATE_LIMIT", "1000/minute")
# TestClient sends Host: testserver.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.magic_link import MagicLinkService
from auth.session import SessionFacade
from auth.store import SessionStore
from auth.tokens import TokenService
from auth.verifier import CredentialVerifier
from cache.store import TTLCache
from core.config import get_settings
from core.errors import EmailSendFailed, ServiceUnavailable
from core.models import Booking, Customer

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"

MARIA_EMAIL = "maria.ostos97@gmail.com"
MARIA_BOOKING = "6004"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable time source. Starts at a fixed epoch; advance() moves it forward."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDirectory:
    """In-memory stand-in for core.directory.BookingDirectory.

    Every lookup yields to the event loop once (asyncio.sleep(0)) so
    concurrent callers interleave the way they do around a real network call.
    Returned records are copies; callers may mutate them freely.
    """

    def __init__(self) -> None:
        self.customers: dict[str, Customer] = {}
        self.orders: dict[str, Booking] = {}
        self.calls: dict[str, int] = {}
        self.unavailable = False

    def add_customer(self, customer: Customer) -> None:
        self.customers[customer.id] = customer

    def add_order(self, booking: Booking) -> None:
        self.orders[booking.number] = booking

    async def _enter(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        await asyncio.sleep(0)
        if self.unavailable:
            raise ServiceUnavailable(detail="fake directory down")

    async def find_order_by_number(self, number: str) -> Booking | None:
        await self._enter("find_order_by_number")
        booking = self.orders.get(number)
        return replace(booking) if booking else None

    async def find_customer_by_id(self, customer_id: str) -> Customer | None:
        await self._enter("find_customer_by_id")
        customer = self.customers.get(customer_id)
        return replace(customer) if customer else None

    async def find_customer_by_email(self, email: str) -> Customer | None:
        await self._enter("find_customer_by_email")
        for customer in self.customers.values():
            if customer.email.lower() == email.lower():
                return replace(customer)
        return None

    async def list_bookings_by_customer(self, customer_id: str) -> list[Booking]:
        await self._enter("list_bookings_by_customer")
        return [replace(b) for b in self.orders.values() if b.customer_id == customer_id]

    def close(self) -> None:
        pass


class RecordingMailer:
    """Captures magic-link emails.

    Set fail=True to simulate SMTP failure. Set gate to an asyncio.Event to
    hold every send until the event is set (a slow mail server).
    """

    is_configured = False

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False
        self.gate: asyncio.Event | None = None

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise EmailSendFailed(detail="fake smtp down")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})

    async def send_magic_link(self, to: str, url: str, expires_minutes: int) -> None:
        await self.send(to, "Your Canary Ride Login Link", url, f"{url} ({expires_minutes} min)")
        self.sent[-1]["url"] = url

    def last_token(self) -> str:
        """Token query parameter of the most recently mailed link."""
        return parse_qs(urlparse(self.sent[-1]["url"]).query)["token"][0]


def seeded_directory() -> FakeDirectory:
    directory = FakeDirectory()
    directory.add_customer(Customer(id="cus_maria", email=MARIA_EMAIL, first_name="Maria", last_name="Ostos"))
    directory.add_customer(Customer(id="cus_john", email="john.doe@example.com", first_name="John", last_name="Doe"))
    directory.add_order(
        Booking(id="ord_6004", number=MARIA_BOOKING, customer_id="cus_maria", status="reserved", grand_total_in_cents=42000)
    )
    directory.add_order(Booking(id="ord_6010", number="6010", customer_id="cus_john", status="reserved"))
    # An order whose customer record has since been deleted.
    directory.add_order(Booking(id="ord_6099", number="6099", customer_id="cus_gone", status="canceled"))
    return directory


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def directory() -> FakeDirectory:
    return seeded_directory()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(default_ttl=300, clock=clock)


@pytest.fixture
def verifier(directory: FakeDirectory, cache: TTLCache) -> CredentialVerifier:
    return CredentialVerifier(directory, cache)


@pytest.fixture
def tokens(store: SessionStore) -> TokenService:
    return TokenService(store, TEST_SECRET)


@pytest.fixture
def magic_links(
    store: SessionStore,
    verifier: CredentialVerifier,
    mailer: RecordingMailer,
    clock: FakeClock,
) -> MagicLinkService:
    return MagicLinkService(store, verifier, mailer, "https://portal.example.test", clock=clock)


@pytest.fixture
def sessions(
    verifier: CredentialVerifier,
    magic_links: MagicLinkService,
    tokens: TokenService,
) -> SessionFacade:
    return SessionFacade(verifier, magic_links, tokens)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(directory: FakeDirectory, mailer: RecordingMailer, clock: FakeClock):
    """Return a lifespan that wires the real services around the fakes.

    The sweep_task is a long-sleeping coroutine so shutdown code that cancels
    it has a real asyncio.Task to work with.
    """

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        wire_services(app, get_settings(), directory, mailer, clock=clock)
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.sweep_task
        app.state.session_store.clear()

    return test_lifespan


@pytest.fixture
def api_client(
    directory: FakeDirectory,
    mailer: RecordingMailer,
    clock: FakeClock,
) -> Generator[tuple[TestClient, FakeDirectory, RecordingMailer], None, None]:
    """Yield (client, directory, mailer) backed by fresh in-memory state per test."""
    app.router.lifespan_context = _patch_lifespan(directory, mailer, clock)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, directory, mailer
