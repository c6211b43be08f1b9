"""
api/limiter.py -- Shared slowapi rate limiter for the auth endpoints.

Login and magic-link requests are throttled per client IP: both hit the slow
booking directory, and magic links additionally send email. Limits come from
Settings (LOGIN_RATE_LIMIT, MAGIC_LINK_RATE_LIMIT).

One module-level instance so api/main.py (middleware, app.state.limiter) and
api/routes/v1/auth.py (@limiter.limit) share a single counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
