"""Client-side filtering, sorting, and grouping over loaded objects."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .entities import ANNOUNCEMENT, CHANGE, SUBMITTED, ManagedObject

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def object_type_of(obj: ManagedObject) -> str:
    """Wire ``object_type`` of an object (``change`` or ``announcement_<category>``)."""
    if obj.kind == CHANGE:
        return CHANGE
    return f"{ANNOUNCEMENT}_{obj.category or 'general'}"


def filter_by_object_type(objects: Iterable[ManagedObject], pattern: str) -> List[ManagedObject]:
    """Keep objects whose object type matches ``pattern``; a trailing ``*`` is a prefix match."""
    if pattern.endswith("*"):
        prefix = pattern[:-1]
        return [obj for obj in objects if object_type_of(obj).startswith(prefix)]
    return [obj for obj in objects if object_type_of(obj) == pattern]


def filter_by_customer(objects: Iterable[ManagedObject], customer: str) -> List[ManagedObject]:
    code = customer.strip()
    return [obj for obj in objects if code in obj.customers]


def filter_by_status(objects: Iterable[ManagedObject], status: Optional[str]) -> List[ManagedObject]:
    """``None`` or ``all`` keeps everything; ``pending`` is an alias of ``submitted``."""
    if not status or status == "all":
        return list(objects)
    wanted = SUBMITTED if status == "pending" else status
    return [obj for obj in objects if obj.status == wanted]


def sort_by_date(objects: Iterable[ManagedObject], *, descending: bool = True) -> List[ManagedObject]:
    """Order by ``created_at``; records without a date sort as the oldest."""
    return sorted(objects, key=lambda obj: obj.created_at or _EPOCH, reverse=descending)


def group_by_customer(objects: Iterable[ManagedObject]) -> Dict[str, List[ManagedObject]]:
    grouped: Dict[str, List[ManagedObject]] = {}
    for obj in objects:
        for customer in obj.customers:
            grouped.setdefault(customer, []).append(obj)
    return grouped


__all__ = [
    "filter_by_customer",
    "filter_by_object_type",
    "filter_by_status",
    "group_by_customer",
    "object_type_of",
    "sort_by_date",
]
