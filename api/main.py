"""
api/main.py -- FastAPI application entry point for the rental portal backend.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origin(s)
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the session subsystem (store, cache, directory client, mailer,
services) and the background sweep task on startup, and tears them down
symmetrically on shutdown. All session state is in-memory: a restart logs
every customer out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.magic_link import MagicLinkService
from auth.mailer import EmailDispatcher
from auth.session import SessionFacade
from auth.store import SessionStore
from auth.tokens import TokenService
from auth.verifier import CredentialVerifier
from cache.store import TTLCache
from core.config import Settings, get_settings
from core.directory import BookingDirectory
from core.errors import PortalError

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("rentalportal.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(
    app: FastAPI,
    settings: Settings,
    directory: BookingDirectory,
    mailer: EmailDispatcher,
    clock=time.time,
) -> None:
    """Build the session subsystem around the given collaborators and attach it to app.state.

    The directory and mailer are parameters so tests can wire the real
    services around in-memory fakes. Everything stateful hangs off one
    SessionStore created here -- there are no module-level singletons.
    """
    store = SessionStore()
    cache = TTLCache(default_ttl=settings.cache_ttl_seconds, clock=clock)
    verifier = CredentialVerifier(directory, cache)
    tokens = TokenService(
        store,
        settings.secret_key,
        access_expire_seconds=settings.access_token_expire_seconds,
        refresh_expire_seconds=settings.refresh_token_expire_seconds,
    )
    magic_links = MagicLinkService(store, verifier, mailer, settings.frontend_url, clock=clock)

    app.state.session_store = store
    app.state.cache = cache
    app.state.directory = directory
    app.state.mailer = mailer
    app.state.tokens = tokens
    app.state.magic_links = magic_links
    app.state.sessions = SessionFacade(verifier, magic_links, tokens)


def sweep_expired(app: FastAPI) -> dict[str, int]:
    """Drop expired cache entries, magic links and moot blacklist entries."""
    return {
        "cache": app.state.cache.cleanup(),
        "magic_links": app.state.magic_links.purge_expired(),
        "blacklist": app.state.session_store.prune_blacklist(time.time()),
    }


async def _sweep_loop(app: FastAPI, interval: float) -> None:
    """Run sweep_expired() every interval seconds until cancelled.

    Memory stays bounded even for cache keys that are never read again and
    links that are never clicked. CancelledError from task.cancel() during
    shutdown propagates out of asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            sweep_expired(app)
        except Exception:
            logger.exception("Session sweep failed")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The sweep task starts last because it references the services.
    """
    logger.info("Rental portal API starting up")
    settings = get_settings()
    directory = BookingDirectory(
        settings.directory_api_url,
        settings.directory_api_key,
        timeout=settings.directory_timeout_seconds,
    )
    mailer = EmailDispatcher(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        smtp_use_tls=settings.smtp_use_tls,
        from_email=settings.from_email,
        from_name=settings.from_name,
    )
    wire_services(app, settings, directory, mailer)
    if not mailer.is_configured:
        logger.warning("SMTP not configured -- magic link emails will be logged, not sent")
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app, settings.cleanup_interval_seconds))
    logger.info("Session subsystem initialized (sweep every %ss)", settings.cleanup_interval_seconds)

    yield

    app.state.sweep_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.sweep_task
    await app.state.magic_links.drain()
    app.state.session_store.clear()
    app.state.cache.clear()
    app.state.directory.close()
    logger.info("Rental portal API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Rental Portal API",
    description="Customer sessions for the rental portal: booking login, magic links, token refresh.",
    version=VERSION,
    lifespan=lifespan,
    # Interactive docs only in development; customers have no use for them.
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack -- register in the order requests should meet them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves through _error_response() so the frontend parses one
# envelope ({"error": {code, message, detail}}) whatever went wrong. Domain
# errors carry UPPER_SNAKE codes; framework-level failures use lower_snake.
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Render a domain error with its own status and code.

    Retryable errors (directory outage) carry Retry-After. Responses are
    never cached: an auth error for one request says nothing about the next.
    The internal detail is logged, never returned.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail or exc.message)
    else:
        logger.info("%s on %s %s", exc.code, request.method, request.url.path)
    headers = {"Cache-Control": "no-store"}
    if exc.retryable:
        headers["Retry-After"] = "30"
    return _error_response(exc.status_code, exc.code, exc.message, headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit hit on %s from %s: %s",
        request.url.path,
        request.client.host if request.client else "unknown",
        exc.detail,
    )
    return _error_response(
        429,
        "rate_limited",
        "Too many attempts. Please wait a minute and try again.",
        detail=str(exc.detail),
        headers={"Retry-After": "60"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field locations and messages only; echoing the input could leak an email.
    problems = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
    return _error_response(422, "validation_error", "Request validation failed.", detail=problems)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback goes to the log, the client gets a generic 500."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint -- no rate limit, no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and which collaborators are configured."""
    mailer: EmailDispatcher = request.app.state.mailer
    return HealthResponse(
        version=VERSION,
        components={
            "app": "ok",
            "directory": "configured" if get_settings().directory_api_key else "unconfigured",
            "email": "smtp" if mailer.is_configured else "log-only",
        },
    )
