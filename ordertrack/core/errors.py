"""
Error taxonomy shared by the session, profile and resource layers.

Every error carries a user-facing ``message`` and the HTTP status the view
layer renders it with. Raw client exceptions (postgrest, httpx, timeouts)
are converted with ``translate_error`` at the layer that catches them.
"""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."

# (backend message fragment, message shown to the user)
AUTH_ERROR_MESSAGES = [
    ("Invalid login credentials", "Invalid email or password. Please try again."),
    ("User already registered", "An account with this email already exists. Please sign in instead."),
    ("Email not confirmed", "Please check your email and click the confirmation link before signing in."),
    ("Invalid email", "Please enter a valid email address."),
    ("Database error saving new user", "Account creation failed. Please check if all required fields are filled and try again."),
    ("Invalid or expired invitation code", "The invitation code is invalid or has expired. Please check with your manager."),
    ("duplicate key value", "This email is already registered. Please sign in instead."),
    ("violates check constraint", "Invalid data provided. Please check your inputs and try again."),
]

NOT_AUTHORIZED_CODES = {"42501"}
NOT_FOUND_CODES = {"PGRST116"}
VALIDATION_CODES = {"23502", "23514", "22P02"}


class OrderTrackError(Exception):
    status_code = 500
    default_message = UNEXPECTED_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": type(self).__name__}


class AuthError(OrderTrackError):
    status_code = 400


class SessionUnavailable(OrderTrackError):
    status_code = 503
    default_message = "Could not reach the authentication service."


class NotAuthenticatedError(OrderTrackError):
    status_code = 401
    default_message = "Please sign in to continue."

    def __init__(self, message: Optional[str] = None, redirect_to: str = "/login", retry: bool = False):
        super().__init__(message)
        self.redirect_to = redirect_to
        self.retry = retry

    def to_dict(self) -> dict:
        return {**super().to_dict(), "redirect_to": self.redirect_to, "retry": self.retry}


class SessionLoadingError(OrderTrackError):
    status_code = 503
    default_message = "Still loading your session. Please wait a moment."


class ProfileDegradedError(OrderTrackError):
    status_code = 409
    default_message = "Your profile is incomplete. Please repair it to continue."

    def __init__(self, reason: str, message: Optional[str] = None, repair_path: str = "/profile/repair"):
        super().__init__(message)
        self.reason = reason
        self.repair_path = repair_path

    def to_dict(self) -> dict:
        return {**super().to_dict(), "reason": self.reason, "repair_path": self.repair_path}


class RepairError(OrderTrackError):
    status_code = 502
    default_message = "We could not repair your profile. Please try again."


class NetworkError(OrderTrackError):
    status_code = 503
    default_message = "Network error. Please check your connection and try again."


class NotAuthorizedError(OrderTrackError):
    status_code = 403
    default_message = "You do not have permission to do that."


class ValidationError(OrderTrackError):
    status_code = 422
    default_message = "Invalid data provided. Please check your inputs and try again."


class NotFoundError(OrderTrackError):
    status_code = 404
    default_message = "Not found or you do not have permission to change it."


def friendly_auth_message(exc: BaseException) -> str:
    """Map a backend auth failure to one of the fixed user-facing strings."""
    message = getattr(exc, "message", None) or str(exc)
    for fragment, friendly in AUTH_ERROR_MESSAGES:
        if fragment in message:
            return friendly
    return UNEXPECTED_ERROR_MESSAGE


def _error_code(exc: BaseException) -> Optional[str]:
    code = getattr(exc, "code", None)
    return str(code) if code is not None else None


def is_network_error(exc: BaseException) -> bool:
    return isinstance(exc, (asyncio.TimeoutError, httpx.TransportError, ConnectionError, OSError))


def translate_error(exc: BaseException) -> OrderTrackError:
    """Convert a raw client exception into the error taxonomy."""
    if isinstance(exc, OrderTrackError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return NetworkError("The server took too long to respond. Please try again.")
    if is_network_error(exc):
        return NetworkError()

    code = _error_code(exc)
    message = (getattr(exc, "message", None) or str(exc)).lower()
    if code in NOT_AUTHORIZED_CODES or "row-level security" in message or "permission denied" in message:
        return NotAuthorizedError()
    if code in NOT_FOUND_CODES:
        return NotFoundError()
    if code in VALIDATION_CODES:
        return ValidationError()
    logger.error(f"Unmapped backend error ({type(exc).__name__}, code={code}): {exc}")
    return OrderTrackError()
