"""Typed errors raised by the object store client."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple


class StoreError(RuntimeError):
    """Base class for object store failures."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        payload: Any = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.hint = hint
        self.payload = payload
        self.context = context


class Transient(StoreError):
    """HTTP 5xx or a transport level failure; retried with backoff."""

    retryable = True


class AuthRequired(StoreError):
    """HTTP 401/403. The session must be re-authenticated; never retried."""


class NotFound(StoreError):
    """HTTP 404 from the store."""


class ValidationRejected(StoreError):
    """Any other HTTP 4xx: the store refused the request as malformed."""


class RetriesExhausted(StoreError):
    """Transient failures persisted through every allowed attempt."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: Optional[StoreError] = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            status=getattr(last_error, "status", None),
            payload=getattr(last_error, "payload", None),
            context=context,
        )
        self.attempts = attempts
        self.last_error = last_error


def error_class_for_status(status: int) -> Optional[type[StoreError]]:
    """Return the error class for a non-2xx status, or ``None`` on success."""
    if 200 <= status < 300:
        return None
    if status in (401, 403):
        return AuthRequired
    if status == 404:
        return NotFound
    if 400 <= status < 500:
        return ValidationRejected
    return Transient


_MAX_DETAIL = 200
_MESSAGE_KEYS = ("message", "error", "detail")
_HINT_KEYS = ("hint", "errors", "details") + _MESSAGE_KEYS


def _flatten(value: Any) -> Optional[str]:
    """Collapse a JSON fragment into one short line of text."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        text = ", ".join(
            f"{key}={_flatten(item)}" for key, item in value.items() if _flatten(item)
        )
    elif isinstance(value, (list, tuple)):
        text = "; ".join(filter(None, (_flatten(item) for item in value)))
    else:
        text = str(value).strip()
    return text[:_MAX_DETAIL] or None


def _first_of(payload: Any, keys: Tuple[str, ...]) -> Optional[str]:
    if isinstance(payload, Mapping):
        for key in keys:
            text = _flatten(payload.get(key))
            if text:
                return text
        return None
    return _flatten(payload)


def error_hint(payload: Any) -> Optional[str]:
    """Explanation the store attached to a rejected request, if any."""
    return _first_of(payload, _HINT_KEYS)


def error_from_response(resp: Any, context: str) -> Optional[StoreError]:
    """Build the classified error for a non-2xx response, ``None`` for success.

    The body is decoded as JSON when possible, otherwise its first 400
    characters of text are kept as the payload.
    """
    error_cls = error_class_for_status(resp.status_code)
    if error_cls is None:
        return None
    try:
        payload = resp.json()
    except ValueError:
        payload = (getattr(resp, "text", "") or "")[:400] or None
    detail = _first_of(payload, _MESSAGE_KEYS)
    suffix = f"{detail} (HTTP {resp.status_code})" if detail else f"HTTP {resp.status_code}"
    code = None
    if isinstance(payload, Mapping):
        code = payload.get("code") or payload.get("error_code")
    return error_cls(
        f"{context}: {suffix}",
        status=resp.status_code,
        code=str(code) if code is not None else None,
        hint=error_hint(payload),
        payload=payload,
        context=context,
    )


__all__ = [
    "AuthRequired",
    "NotFound",
    "RetriesExhausted",
    "StoreError",
    "Transient",
    "ValidationRejected",
    "error_class_for_status",
    "error_from_response",
    "error_hint",
]
