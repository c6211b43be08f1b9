"""
auth/store.py -- In-memory state for magic links and token revocation.

Pattern: Repository. SessionStore owns the three pieces of mutable session
state; services go through its methods and never touch the containers:

  magic links  token -> MagicLink           (pending single-use login links)
  whitelist    set of refresh-token strings (absence = invalid)
  blacklist    access-token string -> exp   (presence = revoked)

Lifecycle: created in the FastAPI lifespan, passed explicitly to the services,
cleared at shutdown. State is process-local and lost on restart; running more
than one instance needs a shared backing store behind this same interface.

Concurrency:
  Every method takes self._lock, so each call is atomic with respect to the
  others whether callers are coroutines on one loop or threads in the
  FastAPI threadpool. Compound operations that must not interleave -- taking a
  magic link, swapping a refresh token -- are single methods for that reason.
  rotate_refresh_token() is the gate that closes the refresh double-spend:
  only one caller can observe the old token present and remove it.
"""

from __future__ import annotations

import threading

from auth.models import MagicLink


class SessionStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._magic_links: dict[str, MagicLink] = {}
        self._refresh_tokens: set[str] = set()
        self._blacklist: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Magic links
    # ------------------------------------------------------------------

    def put_magic_link(self, link: MagicLink) -> None:
        with self._lock:
            self._magic_links[link.token] = link

    def get_magic_link(self, token: str) -> MagicLink | None:
        with self._lock:
            return self._magic_links.get(token)

    def take_magic_link(self, token: str) -> MagicLink | None:
        """Remove and return the link in one step. Concurrent takers: one wins, the rest get None."""
        with self._lock:
            return self._magic_links.pop(token, None)

    def delete_magic_link(self, token: str) -> bool:
        with self._lock:
            return self._magic_links.pop(token, None) is not None

    def purge_expired_magic_links(self, now: float) -> int:
        with self._lock:
            expired = [t for t, link in self._magic_links.items() if link.expires_at < now]
            for token in expired:
                del self._magic_links[token]
        return len(expired)

    # ------------------------------------------------------------------
    # Refresh-token whitelist
    # ------------------------------------------------------------------

    def add_refresh_token(self, token: str) -> None:
        with self._lock:
            self._refresh_tokens.add(token)

    def has_refresh_token(self, token: str) -> bool:
        with self._lock:
            return token in self._refresh_tokens

    def remove_refresh_token(self, token: str) -> bool:
        """Remove token from the whitelist. Returns False if it was not there."""
        with self._lock:
            if token not in self._refresh_tokens:
                return False
            self._refresh_tokens.remove(token)
            return True

    def rotate_refresh_token(self, old: str, new: str) -> bool:
        """Atomically replace old with new. Returns False (and adds nothing) if old is gone."""
        with self._lock:
            if old not in self._refresh_tokens:
                return False
            self._refresh_tokens.remove(old)
            self._refresh_tokens.add(new)
            return True

    # ------------------------------------------------------------------
    # Access-token blacklist
    # ------------------------------------------------------------------

    def blacklist_access_token(self, token: str, expires_at: float) -> None:
        with self._lock:
            self._blacklist[token] = expires_at

    def is_blacklisted(self, token: str) -> bool:
        with self._lock:
            return token in self._blacklist

    def prune_blacklist(self, now: float) -> int:
        """Drop entries whose token has expired on its own. Expired tokens fail verification anyway."""
        with self._lock:
            stale = [t for t, exp in self._blacklist.items() if exp < now]
            for token in stale:
                del self._blacklist[token]
        return len(stale)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "magic_links": len(self._magic_links),
                "refresh_tokens": len(self._refresh_tokens),
                "blacklisted": len(self._blacklist),
            }

    def clear(self) -> None:
        with self._lock:
            self._magic_links.clear()
            self._refresh_tokens.clear()
            self._blacklist.clear()
