"""REST adapter mapping managed objects onto the store's endpoints.

Endpoints:
  - GET  /changes                        -> [change, ...]
  - GET  /changes/{id}                   -> change (ETag header)
  - PUT  /changes/{id}                   body: full change record
  - POST /changes/{id}/approve           body: full change record; the backend
                                           schedules the meeting asynchronously
  - GET  /announcements                  -> [announcement, ...] (404 while unset)
  - GET  /announcements/customer/{code}  -> [announcement, ...]
  - GET  /announcements/{id}             -> announcement (ETag header)
  - POST /api/upload                     body: {"action": "update_announcement",
                                           "announcement_id", "status",
                                           "modification", "customers"}
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from changeportal.adapters.api_errors import NotFound
from changeportal.adapters.store_client import Revalidation, StoreClient
from changeportal.domain.entities import ANNOUNCEMENT, APPROVED, CHANGE, ManagedObject, ModificationEntry
from changeportal.domain.object_normalizer import (
    parse_managed_object,
    parse_managed_objects,
    serialize_managed_object,
    serialize_modification,
)
from changeportal.domain.ports import CustomerCode, ObjectId, ObjectStorePort
from changeportal.domain.queries import filter_by_customer

_COLLECTIONS = {CHANGE: "/changes", ANNOUNCEMENT: "/announcements"}
UPLOAD_PATH = "/api/upload"


class ObjectRestAdapter(ObjectStorePort):
    """Object store port backed by ``StoreClient``."""

    def __init__(self, client: StoreClient) -> None:
        self._log = logging.getLogger(__name__)
        self.client = client

    def collection_path(self, kind: str) -> str:
        try:
            return _COLLECTIONS[kind]
        except KeyError as exc:
            raise ValueError(f"Unknown object kind: {kind!r}") from exc

    def object_path(self, kind: str, object_id: ObjectId) -> str:
        normalized = str(object_id or "").strip()
        if not normalized:
            raise ValueError("object_id is required")
        return f"{self.collection_path(kind)}/{normalized}"

    async def get_object(
        self, kind: str, object_id: ObjectId, *, skip_cache: bool = False
    ) -> ManagedObject:
        tagged = await self.client.fetch_tagged(
            self.object_path(kind, object_id), skip_cache=skip_cache
        )
        return self._parse_record(tagged.payload, kind, token=tagged.token)

    async def list_objects(
        self,
        kind: str,
        *,
        customer: Optional[CustomerCode] = None,
        skip_cache: bool = False,
    ) -> List[ManagedObject]:
        if kind == ANNOUNCEMENT:
            path = self.collection_path(kind)
            if customer:
                path = f"{path}/customer/{customer}"
            try:
                payload = await self.client.fetch(path, skip_cache=skip_cache)
            except NotFound:
                self._log.warning("Announcements endpoint not available: %s", path)
                return []
            return parse_managed_objects(payload, ANNOUNCEMENT)

        payload = await self.client.fetch(self.collection_path(kind), skip_cache=skip_cache)
        objects = parse_managed_objects(payload, kind)
        if customer:
            # The store has no per-customer change endpoint; filter locally.
            objects = filter_by_customer(objects, customer)
        return objects

    async def persist_transition(
        self, updated: ManagedObject, entry: ModificationEntry
    ) -> ManagedObject:
        """Write ``updated`` (already carrying ``entry``) to the store."""
        object_path = self.object_path(updated.kind, updated.id)
        if updated.kind == CHANGE:
            body = serialize_managed_object(updated)
            if updated.status == APPROVED:
                response = await self.client.update(
                    f"{object_path}/approve", body, method="POST", object_path=object_path
                )
            else:
                response = await self.client.update(object_path, body, method="PUT")
        else:
            body = {
                "action": "update_announcement",
                "announcement_id": updated.id,
                "status": updated.status,
                "modification": serialize_modification(entry),
            }
            if updated.customers:
                body["customers"] = list(updated.customers)
            response = await self.client.update(
                UPLOAD_PATH, body, method="POST", object_path=object_path
            )
        return self._stored_or_local(response, updated)

    async def fetch_if_changed(self, path: str, token: Optional[str]) -> Revalidation:
        return await self.client.fetch_if_changed(path, token)

    # ------------------------------------------------------------------
    @staticmethod
    def _parse_record(payload: Any, kind: str, *, token: Optional[str] = None) -> ManagedObject:
        if not isinstance(payload, Mapping):
            raise ValueError(f"Invalid {kind} payload: expected object")
        return parse_managed_object(payload, kind, token=token)

    def _stored_or_local(self, response: Any, updated: ManagedObject) -> ManagedObject:
        """Prefer the persisted record echoed by the store, else the local copy."""
        if isinstance(response, Mapping) and "status" in response:
            try:
                stored = parse_managed_object(response, updated.kind)
            except ValueError:
                self._log.debug("Store response for %s is not a record; keeping local copy", updated.id)
                return updated
            if stored.id == updated.id:
                return stored
        return updated


__all__ = ["ObjectRestAdapter", "UPLOAD_PATH"]
