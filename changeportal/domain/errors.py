"""Domain-level error types for use-case and adapter mapping.

This module is the home for domain errors that must cross layer boundaries
without leaking transport-specific exception details.
"""

from __future__ import annotations


class IllegalTransition(Exception):
    """Requested status is not reachable from the current one; raised before any I/O."""

    def __init__(self, current: str, requested: str, *, object_id: str = "") -> None:
        target = f" for {object_id}" if object_id else ""
        super().__init__(f"Cannot move from '{current}' to '{requested}'{target}")
        self.current = current
        self.requested = requested
        self.object_id = object_id


__all__ = ["IllegalTransition"]
