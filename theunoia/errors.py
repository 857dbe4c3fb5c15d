"""Exceptions raised by the service layer and caught by the pages."""

from __future__ import annotations

from postgrest.exceptions import APIError


class ServiceError(RuntimeError):
    """A Supabase call failed; message is ready to show to the user."""


class ValidationFailed(ValueError):
    """Form input was rejected before anything was sent to the backend."""


class InsufficientCredits(ServiceError):
    """The user does not have enough credits for the action."""


class BidRejected(ServiceError):
    """A bid was refused (duplicate, below minimum or bidding closed)."""


class PhaseConflict(ServiceError):
    """A phase row changed since it was read; reload and retry."""


class TransitionNotAllowed(ValueError):
    """The phase-lock state machine refused a transition."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def format_api_error(context: str, exc: APIError) -> str:
    message = getattr(exc, "message", str(exc))
    hint = getattr(exc, "hint", "")
    details = getattr(exc, "details", "")
    parts = [f"{context}: {message}"]
    if details:
        parts.append(str(details))
    if hint:
        parts.append(str(hint))
    return " | ".join(parts)


def api_error_code(exc: Exception) -> str | None:
    code = getattr(exc, "code", None)
    return str(code) if code else None


__all__ = [
    "ServiceError",
    "ValidationFailed",
    "InsufficientCredits",
    "BidRejected",
    "PhaseConflict",
    "TransitionNotAllowed",
    "format_api_error",
    "api_error_code",
]
