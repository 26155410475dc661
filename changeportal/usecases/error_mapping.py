"""Translate store and domain errors into user-facing UseCaseError instances."""

from __future__ import annotations

from typing import Optional

from changeportal.adapters.api_errors import (
    AuthRequired,
    NotFound,
    RetriesExhausted,
    StoreError,
    Transient,
    ValidationRejected,
    error_hint,
)
from changeportal.domain.errors import IllegalTransition
from changeportal.domain.ports import UseCaseError

AUTH_REQUIRED = "AUTH_REQUIRED"
NOT_FOUND = "NOT_FOUND"
VALIDATION_REJECTED = "VALIDATION_REJECTED"
RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
STORE_ERROR = "STORE_ERROR"


def map_store_error(
    exc: Exception,
    *,
    default_code: str,
    default_message: Optional[str] = None,
) -> UseCaseError:
    """Map adapter and domain exceptions to stable UseCaseError codes.

    Args:
        exc: Exception raised by the store client, the state machine, or a
            use case.
        default_code: Code used for exceptions outside the store taxonomy.
        default_message: Message used when ``exc`` has no text.

    Returns:
        UseCaseError carrying a stable ``code`` and a presentable message.
    """
    if isinstance(exc, UseCaseError):
        return exc
    if isinstance(exc, IllegalTransition):
        return UseCaseError(ILLEGAL_TRANSITION, str(exc))
    if isinstance(exc, AuthRequired):
        return UseCaseError(
            AUTH_REQUIRED,
            "Authentication required. Please sign in again.",
        )
    if isinstance(exc, NotFound):
        return UseCaseError(NOT_FOUND, _compose_error_message("Object not found", exc.hint))
    if isinstance(exc, ValidationRejected):
        hint = exc.hint or error_hint(exc.payload)
        label = f"Request rejected (HTTP {exc.status})" if exc.status else "Request rejected"
        return UseCaseError(VALIDATION_REJECTED, _compose_error_message(label, hint))
    if isinstance(exc, RetriesExhausted):
        return UseCaseError(
            RETRIES_EXHAUSTED,
            f"Store unavailable after {exc.attempts} attempts, try again.",
        )
    if isinstance(exc, Transient):
        return UseCaseError(REQUEST_TIMEOUT, "Request timed out. Check connection.")
    if isinstance(exc, StoreError):
        return UseCaseError(STORE_ERROR, str(exc))

    message = default_message or str(exc) or "Unexpected error."
    return UseCaseError(default_code, message)


def _compose_error_message(base: str, hint: Optional[str]) -> str:
    hint_text = (hint or "").strip()
    if hint_text:
        return f"{base}: {hint_text}"
    if base.endswith("."):
        return base
    return f"{base}."


__all__ = [
    "AUTH_REQUIRED",
    "ILLEGAL_TRANSITION",
    "NOT_FOUND",
    "REQUEST_TIMEOUT",
    "RETRIES_EXHAUSTED",
    "STORE_ERROR",
    "VALIDATION_REJECTED",
    "map_store_error",
]
