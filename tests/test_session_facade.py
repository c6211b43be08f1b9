"""Tests for auth/session.py -- the full session lifecycle without HTTP.

Scenarios follow a customer through login, magic links, refresh rotation and
logout, including the concurrency cases: two refreshes racing on one token
and a directory outage in the middle of a refresh.
"""

from __future__ import annotations

import asyncio

import pytest

from auth.session import SessionFacade
from auth.store import SessionStore
from core.errors import (
    CustomerNotFound,
    InvalidCredentials,
    InvalidMagicLink,
    InvalidRefreshToken,
    ServiceUnavailable,
    TokenRevoked,
)

MARIA = "maria.ostos97@gmail.com"


def _send_link(sessions: SessionFacade, email: str) -> None:
    """Request a magic link, then run the queued delivery the way BackgroundTasks would."""

    async def run() -> None:
        queued = []
        await sessions.send_magic_link(email, lambda func, *args: queued.append(func(*args)))
        for delivery in queued:
            await delivery

    asyncio.run(run())


# ---------------------------------------------------------------------------
# Booking login
# ---------------------------------------------------------------------------


class TestLoginWithBooking:
    def test_login_returns_customer_bookings_and_tokens(self, sessions: SessionFacade, store: SessionStore) -> None:
        result = asyncio.run(sessions.login_with_booking("6004", MARIA))
        assert result.customer.id == "cus_maria"
        assert result.customer.name == "Maria Ostos"
        assert [b.number for b in result.customer.bookings] == ["6004"]
        assert store.has_refresh_token(result.tokens.refresh_token)

        claims = sessions.who_am_i(result.tokens.access_token)
        assert claims.customer_id == "cus_maria"

    @pytest.mark.parametrize(
        "booking_number, email",
        [
            ("6004", "john.doe@example.com"),
            ("9999", MARIA),
            ("6099", MARIA),
        ],
    )
    def test_bad_credentials_issue_nothing(
        self, sessions: SessionFacade, store: SessionStore, booking_number: str, email: str
    ) -> None:
        with pytest.raises(InvalidCredentials):
            asyncio.run(sessions.login_with_booking(booking_number, email))
        assert store.stats()["refresh_tokens"] == 0

    def test_outage_is_503_not_401(self, sessions: SessionFacade, store: SessionStore, directory) -> None:
        directory.unavailable = True
        with pytest.raises(ServiceUnavailable):
            asyncio.run(sessions.login_with_booking("6004", MARIA))
        assert store.stats()["refresh_tokens"] == 0


# ---------------------------------------------------------------------------
# Magic link login
# ---------------------------------------------------------------------------


class TestMagicLinkLogin:
    def test_send_then_verify(self, sessions: SessionFacade, mailer) -> None:
        _send_link(sessions, MARIA)
        result = asyncio.run(sessions.verify_magic_link(mailer.last_token()))
        assert result.customer.id == "cus_maria"
        assert result.customer.bookings[0].number == "6004"

    def test_link_cannot_be_used_twice(self, sessions: SessionFacade, mailer) -> None:
        _send_link(sessions, MARIA)
        token = mailer.last_token()
        asyncio.run(sessions.verify_magic_link(token))
        with pytest.raises(InvalidMagicLink):
            asyncio.run(sessions.verify_magic_link(token))

    def test_customer_deleted_after_send(self, sessions: SessionFacade, mailer, directory, cache) -> None:
        _send_link(sessions, MARIA)
        del directory.customers["cus_maria"]
        cache.clear()
        with pytest.raises(CustomerNotFound):
            asyncio.run(sessions.verify_magic_link(mailer.last_token()))


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_refresh_rotates(self, sessions: SessionFacade) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        pair = asyncio.run(sessions.refresh(login.tokens.refresh_token))
        assert pair.refresh_token != login.tokens.refresh_token
        assert sessions.who_am_i(pair.access_token).customer_id == "cus_maria"

    def test_same_refresh_token_works_once(self, sessions: SessionFacade) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        asyncio.run(sessions.refresh(login.tokens.refresh_token))
        with pytest.raises(InvalidRefreshToken):
            asyncio.run(sessions.refresh(login.tokens.refresh_token))

    def test_concurrent_refresh_has_one_winner(self, sessions: SessionFacade, store: SessionStore) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        token = login.tokens.refresh_token

        async def race():
            return await asyncio.gather(
                sessions.refresh(token),
                sessions.refresh(token),
                return_exceptions=True,
            )

        results = asyncio.run(race())
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidRefreshToken)
        assert store.stats()["refresh_tokens"] == 1

    def test_outage_during_refresh_keeps_old_token(self, sessions: SessionFacade, directory) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        directory.unavailable = True
        with pytest.raises(ServiceUnavailable):
            asyncio.run(sessions.refresh(login.tokens.refresh_token))
        directory.unavailable = False
        assert asyncio.run(sessions.refresh(login.tokens.refresh_token)).access_token

    def test_refresh_for_deleted_customer_is_terminal(
        self, sessions: SessionFacade, directory, store: SessionStore
    ) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        del directory.customers["cus_maria"]
        with pytest.raises(InvalidRefreshToken):
            asyncio.run(sessions.refresh(login.tokens.refresh_token))
        assert not store.has_refresh_token(login.tokens.refresh_token)

    def test_refresh_picks_up_profile_changes(self, sessions: SessionFacade, directory) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        directory.customers["cus_maria"].last_name = "Ostos Ruiz"
        pair = asyncio.run(sessions.refresh(login.tokens.refresh_token))
        assert sessions.who_am_i(login.tokens.access_token).name == "Maria Ostos"
        assert sessions.who_am_i(pair.access_token).name == "Maria Ostos Ruiz"


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


class TestLogout:
    def test_logout_revokes_access_token(self, sessions: SessionFacade) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        sessions.logout(login.tokens.access_token)
        with pytest.raises(TokenRevoked):
            sessions.who_am_i(login.tokens.access_token)

    def test_logout_without_refresh_token_leaves_it_valid(self, sessions: SessionFacade) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        sessions.logout(login.tokens.access_token)
        assert asyncio.run(sessions.refresh(login.tokens.refresh_token)).access_token

    def test_logout_with_refresh_token_ends_the_session(self, sessions: SessionFacade) -> None:
        login = asyncio.run(sessions.login_with_booking("6004", MARIA))
        sessions.logout(login.tokens.access_token, login.tokens.refresh_token)
        with pytest.raises(InvalidRefreshToken):
            asyncio.run(sessions.refresh(login.tokens.refresh_token))

    def test_logout_never_fails(self, sessions: SessionFacade) -> None:
        sessions.logout(None)
        sessions.logout("garbage", "also-garbage")
