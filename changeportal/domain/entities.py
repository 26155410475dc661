"""Domain value objects for managed workflow objects (changes and announcements)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

CHANGE = "change"
ANNOUNCEMENT = "announcement"
KINDS: Tuple[str, ...] = (CHANGE, ANNOUNCEMENT)

DRAFT = "draft"
SUBMITTED = "submitted"
APPROVED = "approved"
COMPLETED = "completed"
CANCELLED = "cancelled"
STATUSES: Tuple[str, ...] = (DRAFT, SUBMITTED, APPROVED, COMPLETED, CANCELLED)

MODIFICATION_TYPES: Tuple[str, ...] = (
    "created",
    "submitted",
    "approved",
    "cancelled",
    "completed",
    "updated",
    "meeting_scheduled",
    "meeting_cancelled",
)

# Statuses whose meeting join link is withheld from callers.
_LINK_HIDDEN_STATUSES = frozenset({COMPLETED, CANCELLED})


@dataclass(frozen=True)
class MeetingMetadata:
    """Meeting details written by the backend once scheduling completes."""

    join_url: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[str] = None
    meeting_id: Optional[str] = None
    subject: Optional[str] = None
    organizer: Optional[str] = None

    @property
    def has_link(self) -> bool:
        return bool(self.join_url and self.join_url.strip())


@dataclass(frozen=True)
class ModificationEntry:
    """One audit-trail record appended on every transition or side effect."""

    timestamp: datetime
    actor_id: str
    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    """Transition-specific extras such as a cancellation ``reason``."""

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type.strip():
            raise ValueError("ModificationEntry.type must be a non-empty string.")
        if self.timestamp.tzinfo is None:
            raise ValueError("ModificationEntry.timestamp must be timezone-aware.")


@dataclass(frozen=True)
class ManagedObject:
    """A change or announcement tracked through the approval workflow.

    Instances are immutable; a transition produces a new object via
    ``with_transition``. Once the object is completed or cancelled neither the
    typed ``meeting_metadata`` nor ``extra`` exposes a join link, even when the
    store still holds one. The store's record is kept unredacted in
    ``wire_extra`` so an update writes it back unchanged.
    """

    id: str
    kind: str
    status: str
    customers: Tuple[str, ...] = ()
    modifications: Tuple[ModificationEntry, ...] = ()
    meeting_metadata: Optional[MeetingMetadata] = None
    include_meeting: bool = False
    category: Optional[str] = None
    """Announcement subtype (``cic``, ``finops``...); unused by the workflow."""
    title: str = ""
    created_at: Optional[datetime] = None
    revalidation_token: Optional[str] = None
    """ETag from the read that produced this object."""
    extra: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)
    """Wire fields without a typed counterpart, redacted like ``meeting_metadata``."""

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("ManagedObject.id must be a non-empty string.")
        if self.kind not in KINDS:
            raise ValueError(f"Unknown object kind: {self.kind!r}")
        if self.status not in STATUSES:
            raise ValueError(f"Unknown status: {self.status!r}")
        object.__setattr__(self, "customers", tuple(self.customers))
        object.__setattr__(self, "modifications", tuple(self.modifications))
        wire = dict(self.extra)
        object.__setattr__(self, "_wire_extra", wire)
        if self.status not in _LINK_HIDDEN_STATUSES:
            return
        meeting = self.meeting_metadata
        if meeting is not None and meeting.join_url:
            object.__setattr__(self, "meeting_metadata", replace(meeting, join_url=None))
        stored = wire.get("meeting_metadata")
        if isinstance(stored, Mapping) and "join_url" in stored:
            redacted = {key: value for key, value in stored.items() if key != "join_url"}
            object.__setattr__(self, "extra", {**wire, "meeting_metadata": redacted})

    @property
    def wire_extra(self) -> Mapping[str, Any]:
        """Passthrough fields exactly as the store sent them."""
        return self._wire_extra

    @property
    def join_url(self) -> Optional[str]:
        meeting = self.meeting_metadata
        return meeting.join_url if meeting is not None and meeting.has_link else None

    @property
    def has_meeting_link(self) -> bool:
        return self.join_url is not None

    def with_transition(self, status: str, entry: ModificationEntry) -> "ManagedObject":
        """Return a copy in ``status`` with ``entry`` appended to the audit trail."""
        return replace(
            self,
            status=status,
            modifications=self.modifications + (entry,),
            revalidation_token=None,
            extra=self._wire_extra,
        )


__all__ = [
    "ANNOUNCEMENT",
    "APPROVED",
    "CANCELLED",
    "CHANGE",
    "COMPLETED",
    "DRAFT",
    "KINDS",
    "MODIFICATION_TYPES",
    "ManagedObject",
    "MeetingMetadata",
    "ModificationEntry",
    "STATUSES",
    "SUBMITTED",
]
