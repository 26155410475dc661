from __future__ import annotations
from typing import Any, List, Optional, Protocol

from .entities import ManagedObject, ModificationEntry

ObjectId = str
CustomerCode = str


# ---- Error model ----
class UseCaseError(Exception):
    """Base class for use case level errors (user-presentable)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# ---- Ports (Hexagonal boundaries) ----
class RevalidationSource(Protocol):
    """Conditional reads used by the consistency watcher."""

    async def fetch_if_changed(self, path: str, token: Optional[str]) -> Any: ...  # Revalidation


class ObjectStorePort(RevalidationSource, Protocol):
    """Read and mutate changes/announcements in the remote object store."""

    def object_path(self, kind: str, object_id: ObjectId) -> str: ...
    async def get_object(
        self, kind: str, object_id: ObjectId, *, skip_cache: bool = False
    ) -> ManagedObject: ...
    async def list_objects(
        self,
        kind: str,
        *,
        customer: Optional[CustomerCode] = None,
        skip_cache: bool = False,
    ) -> List[ManagedObject]: ...
    async def persist_transition(
        self, updated: ManagedObject, entry: ModificationEntry
    ) -> ManagedObject: ...  # returns the stored object
