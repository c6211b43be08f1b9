"""
core/errors.py -- Closed error taxonomy for the identity subsystem.

Every failure a caller must handle differently has its own class. Each class
pins an HTTP status, a stable machine-readable code, and a default message, so
api/main.py can render any of them with one exception handler and route code
never builds error payloads by hand.

Retryable vs terminal:
  ServiceUnavailable is the only retryable kind -- the booking directory was
  unreachable and the same request may succeed later. Every other auth failure
  is terminal for the request: the client restarts the flow (re-login or a new
  magic link).

Layer rule: core/ is the kernel. No imports from api/, auth/, or cache/.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for errors that map onto a structured HTTP error response."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred."
    retryable: bool = False

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or type(self).message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Credential / identity failures
# ---------------------------------------------------------------------------


class InvalidCredentials(PortalError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid booking number or email."


class CustomerNotFound(PortalError):
    status_code = 404
    code = "CUSTOMER_NOT_FOUND"
    message = "Customer not found."


# ---------------------------------------------------------------------------
# Magic links
# ---------------------------------------------------------------------------


class InvalidMagicLink(PortalError):
    status_code = 401
    code = "INVALID_MAGIC_LINK"
    message = "Invalid or expired magic link."


class ExpiredMagicLink(PortalError):
    status_code = 401
    code = "EXPIRED_MAGIC_LINK"
    message = "Magic link has expired."


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class InvalidRefreshToken(PortalError):
    status_code = 401
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid refresh token."


class TokenExpired(PortalError):
    status_code = 401
    code = "TOKEN_EXPIRED"
    message = "Token has expired."


class TokenRevoked(PortalError):
    status_code = 401
    code = "TOKEN_REVOKED"
    message = "Token has been revoked."


class InvalidToken(PortalError):
    status_code = 401
    code = "INVALID_TOKEN"
    message = "Invalid token."


class MalformedToken(PortalError):
    """A token parameter was missing or blank, so there is nothing to check."""

    status_code = 400
    code = "INVALID_TOKEN"
    message = "Invalid or missing token."


class MissingToken(PortalError):
    status_code = 401
    code = "MISSING_TOKEN"
    message = "Authorization token required."


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class ServiceUnavailable(PortalError):
    """The booking directory could not be reached or answered 5xx."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    message = "Booking service is temporarily unavailable. Please try again."
    retryable = True


class DirectoryError(PortalError):
    """The directory rejected the request for a reason that is our fault (bad API key, 4xx)."""

    status_code = 500
    code = "DIRECTORY_ERROR"
    message = "Booking service request failed."


class EmailSendFailed(PortalError):
    status_code = 500
    code = "EMAIL_SEND_FAILED"
    message = "Failed to send email."
