"""Use case for loading the objects shown on the approvals and overview pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from changeportal.domain.entities import ANNOUNCEMENT, CHANGE, ManagedObject
from changeportal.domain.ports import ObjectStorePort
from changeportal.domain.queries import filter_by_object_type, filter_by_status, sort_by_date
from changeportal.usecases.error_mapping import AUTH_REQUIRED, map_store_error


@dataclass
class ListResult:
    """Objects that loaded plus per-kind failure messages."""

    objects: List[ManagedObject] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)


@dataclass
class ListManagedObjects:
    """Load changes and announcements, newest first, with optional filters."""

    store: ObjectStorePort

    async def __call__(
        self,
        *,
        customer: Optional[str] = None,
        status: Optional[str] = None,
        object_type: Optional[str] = None,
        skip_cache: bool = False,
    ) -> ListResult:
        result = ListResult()
        for kind in (CHANGE, ANNOUNCEMENT):
            try:
                loaded = await self.store.list_objects(kind, customer=customer, skip_cache=skip_cache)
            except Exception as exc:
                mapped = map_store_error(
                    exc,
                    default_code="LIST_FAILED",
                    default_message=f"Failed to load {kind}s.",
                )
                if mapped.code == AUTH_REQUIRED:
                    raise mapped from exc
                result.failures[kind] = mapped.message
                continue
            result.objects.extend(loaded)

        objects = filter_by_status(result.objects, status)
        if object_type and object_type != "all":
            objects = filter_by_object_type(objects, object_type)
        result.objects = sort_by_date(objects)
        return result


__all__ = ["ListManagedObjects", "ListResult"]
