"""
auth/magic_link.py -- Single-use, time-limited email login links.

Lifecycle of a link (transitions are one-way):

    issued --redeem()--> consumed      (entry removed, caller gets the email)
    issued --time------> expired       (removed on next redeem() or sweep)
    issued --mail fails-> discarded    (nobody can receive it)

Anti-enumeration: send() behaves identically for known and unknown emails.
Unknown addresses create no entry and send nothing, but the caller still sees
a normal return; only an internal log line records the miss. Delivery never
runs inside send(): it is handed to a scheduler (FastAPI BackgroundTasks from
the route, a tracked asyncio task otherwise) so SMTP latency cannot show up in
the response time. Delivery failures are logged and swallowed.

Tokens are secrets.token_hex(32): 256 bits, URL-safe, unguessable.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

from auth.mailer import EmailDispatcher
from auth.models import MagicLink
from auth.store import SessionStore
from auth.verifier import CredentialVerifier
from core.errors import EmailSendFailed, ExpiredMagicLink, InvalidMagicLink
from core.redact import mask_email, mask_token

logger = logging.getLogger("rentalportal.auth")

# Fixed lifetime; not exposed as a setting.
MAGIC_LINK_TTL_SECONDS = 15 * 60

# Signature of BackgroundTasks.add_task: schedule(func, *args).
Scheduler = Callable[..., Any]


class MagicLinkService:
    def __init__(
        self,
        store: SessionStore,
        verifier: CredentialVerifier,
        mailer: EmailDispatcher,
        frontend_url: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._mailer = mailer
        self._frontend_url = frontend_url.rstrip("/")
        self._clock = clock
        self._deliveries: set[asyncio.Task] = set()

    async def send(self, email: str, schedule: Scheduler | None = None) -> None:
        """Issue a link for email and schedule its delivery, if the email belongs to a customer.

        Returns as soon as the link is stored; deliver() runs later through
        schedule (default: a tracked asyncio task). ServiceUnavailable from
        the directory still propagates -- it reveals nothing about the address.
        """
        customer = await self._verifier.get_customer_by_email(email)
        if customer is None:
            logger.warning("Magic link requested for unknown email %s", mask_email(email))
            return

        link = MagicLink(
            token=secrets.token_hex(32),
            email=customer.email,
            expires_at=self._clock() + MAGIC_LINK_TTL_SECONDS,
        )
        self._store.put_magic_link(link)
        (schedule or self._spawn)(self.deliver, link)

    async def deliver(self, link: MagicLink) -> None:
        """Mail link to its owner. On failure the link is discarded; nothing is raised."""
        url = f"{self._frontend_url}/auth/magic-link?{urlencode({'token': link.token})}"
        try:
            await self._mailer.send_magic_link(link.email, url, MAGIC_LINK_TTL_SECONDS // 60)
        except EmailSendFailed:
            self._store.delete_magic_link(link.token)
            logger.error("Magic link for %s discarded: email delivery failed", mask_email(link.email))
            return
        logger.info("Magic link sent to %s token=%s", mask_email(link.email), mask_token(link.token))

    async def drain(self) -> None:
        """Wait for every delivery started by the default scheduler."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    def redeem(self, token: str) -> str:
        """Consume token and return the email it was issued for.

        The entry is removed before this returns, whatever the outcome, so a
        token can succeed at most once.
        """
        link = self._store.take_magic_link(token)
        if link is None:
            raise InvalidMagicLink()
        if link.expires_at < self._clock():
            raise ExpiredMagicLink()
        return link.email

    def purge_expired(self) -> int:
        removed = self._store.purge_expired_magic_links(self._clock())
        if removed:
            logger.info("Magic link cleanup: removed %d expired links", removed)
        return removed

    def _spawn(self, func: Callable[..., Awaitable[None]], *args: Any) -> None:
        task = asyncio.create_task(func(*args))
        self._deliveries.add(task)
        task.add_done_callback(self._delivery_done)

    def _delivery_done(self, task: asyncio.Task) -> None:
        self._deliveries.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Magic link delivery crashed", exc_info=task.exception())
