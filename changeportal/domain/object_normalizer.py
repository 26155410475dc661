"""Translate store records to ``ManagedObject`` values and back.

Field names and casing follow the existing backend: changes use ``changeId``
and ``changeTitle``, announcements use ``announcement_id`` and an
``object_type`` of ``announcement_<category>``, audit entries use ``user_id``
and ``modification_type``, meeting details sit under ``meeting_metadata``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .entities import (
    ANNOUNCEMENT,
    CHANGE,
    STATUSES,
    SUBMITTED,
    ManagedObject,
    MeetingMetadata,
    ModificationEntry,
)
from .time_utils import format_timestamp, parse_timestamp, utc_now

_log = logging.getLogger(__name__)

# Legacy spellings still present in older records.
_STATUS_ALIASES = {"pending_approval": SUBMITTED, "pending": SUBMITTED}

_ENTRY_KEYS = ("timestamp", "user_id", "userId", "modification_type", "modificationType")
_MEETING_FIELDS = (
    "join_url",
    "start_time",
    "end_time",
    "duration",
    "meeting_id",
    "subject",
    "organizer",
)
# Keys re-rendered by ``serialize_managed_object``; everything else passes through.
_OWNED_KEYS = (
    "changeId",
    "announcement_id",
    "id",
    "object_type",
    "status",
    "customers",
    "modifications",
    "include_meeting",
)


def _normalize_identifier(value: Any) -> Optional[str]:
    if value is None:
        return None
    token = value.strip() if isinstance(value, str) else str(value).strip()
    return token or None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_status(value: Any) -> str:
    token = str(value or "").strip().lower() or "draft"
    token = _STATUS_ALIASES.get(token, token)
    if token not in STATUSES:
        raise ValueError(f"Unknown status in store record: {value!r}")
    return token


def detect_kind(payload: Mapping[str, Any]) -> str:
    object_type = str(payload.get("object_type") or "").strip().lower()
    if object_type.startswith(ANNOUNCEMENT):
        return ANNOUNCEMENT
    if object_type in ("", CHANGE) and "announcement_id" in payload and "changeId" not in payload:
        return ANNOUNCEMENT
    return CHANGE


def _category(payload: Mapping[str, Any]) -> Optional[str]:
    object_type = str(payload.get("object_type") or "")
    if object_type.startswith(f"{ANNOUNCEMENT}_"):
        return object_type[len(ANNOUNCEMENT) + 1:] or None
    raw = _optional_text(payload.get("announcement_type"))
    if raw and raw.startswith(f"{ANNOUNCEMENT}_"):
        raw = raw[len(ANNOUNCEMENT) + 1:]
    return raw.lower() if raw else None


def _meeting_requested(payload: Mapping[str, Any]) -> bool:
    if payload.get("include_meeting") is True:
        return True
    for key in ("meetingRequired", "meeting_required"):
        if str(payload.get(key) or "").strip().lower() == "yes":
            return True
    return False


def _customers(payload: Mapping[str, Any]) -> Tuple[str, ...]:
    raw = payload.get("customers")
    if isinstance(raw, (list, tuple)):
        codes = (_normalize_identifier(item) for item in raw)
        return tuple(code for code in codes if code)
    single = _normalize_identifier(payload.get("customer"))
    return (single,) if single else ()


def parse_meeting(raw: Any) -> Optional[MeetingMetadata]:
    if not isinstance(raw, Mapping):
        return None
    values = {name: _optional_text(raw.get(name)) for name in _MEETING_FIELDS}
    if not any(values.values()):
        return None
    return MeetingMetadata(**values)


def parse_modification(raw: Mapping[str, Any]) -> ModificationEntry:
    entry_type = _optional_text(raw.get("modification_type") or raw.get("modificationType"))
    if not entry_type:
        raise ValueError("Modification entry without modification_type")
    timestamp = parse_timestamp(raw.get("timestamp")) or utc_now()
    actor = _optional_text(raw.get("user_id") or raw.get("userId")) or "Unknown"
    payload = {key: value for key, value in raw.items() if key not in _ENTRY_KEYS}
    return ModificationEntry(timestamp=timestamp, actor_id=actor, type=entry_type, payload=payload)


def parse_managed_object(
    payload: Mapping[str, Any],
    kind: Optional[str] = None,
    *,
    token: Optional[str] = None,
) -> ManagedObject:
    """Build a ``ManagedObject`` from a store record.

    Raises:
        ValueError: When the record has no identifier, an unknown status, or a
            malformed audit entry.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Store record must be a JSON object")
    resolved_kind = kind or detect_kind(payload)
    if resolved_kind == CHANGE:
        object_id = _normalize_identifier(payload.get("changeId") or payload.get("id"))
        title = str(payload.get("changeTitle") or payload.get("title") or "")
    else:
        object_id = _normalize_identifier(payload.get("announcement_id") or payload.get("id"))
        title = str(payload.get("title") or "")
    if not object_id:
        raise ValueError(f"{resolved_kind} record without an identifier")

    modifications = [
        parse_modification(item)
        for item in payload.get("modifications") or []
        if isinstance(item, Mapping)
    ]
    extra = {key: value for key, value in payload.items() if key not in _OWNED_KEYS}
    return ManagedObject(
        id=object_id,
        kind=resolved_kind,
        status=normalize_status(payload.get("status")),
        customers=_customers(payload),
        modifications=tuple(modifications),
        meeting_metadata=parse_meeting(payload.get("meeting_metadata")),
        include_meeting=_meeting_requested(payload),
        category=_category(payload) if resolved_kind == ANNOUNCEMENT else None,
        title=title,
        created_at=parse_timestamp(payload.get("createdAt") or payload.get("created_at")),
        revalidation_token=token,
        extra=extra,
    )


def parse_managed_objects(payload: Any, kind: Optional[str] = None) -> List[ManagedObject]:
    """Parse a collection response; accepts a bare list or ``{"items": [...]}``.

    Records that fail to parse are logged and left out so one bad entry does
    not hide the rest of the list.
    """
    if isinstance(payload, Mapping):
        for key in ("items", "changes", "announcements", "objects"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            return [parse_managed_object(payload, kind)]
    if not isinstance(payload, list):
        return []
    objects: List[ManagedObject] = []
    for index, item in enumerate(payload):
        if not isinstance(item, Mapping):
            continue
        try:
            objects.append(parse_managed_object(item, kind))
        except ValueError as exc:
            _log.warning("Skipping malformed record #%d in collection: %s", index, exc)
    return objects


def serialize_modification(entry: ModificationEntry) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "timestamp": format_timestamp(entry.timestamp),
        "user_id": entry.actor_id,
        "modification_type": entry.type,
    }
    for key, value in entry.payload.items():
        record.setdefault(key, value)
    return record


def serialize_managed_object(obj: ManagedObject) -> Dict[str, Any]:
    """Render the full store record, including passthrough fields."""
    record: Dict[str, Any] = dict(obj.wire_extra)
    if obj.kind == CHANGE:
        record["changeId"] = obj.id
        record["object_type"] = CHANGE
    else:
        record["announcement_id"] = obj.id
        record["object_type"] = f"{ANNOUNCEMENT}_{obj.category or 'general'}"
    record["status"] = obj.status
    record["customers"] = list(obj.customers)
    record["include_meeting"] = obj.include_meeting
    record["modifications"] = [serialize_modification(entry) for entry in obj.modifications]
    if obj.meeting_metadata is not None:
        stored = obj.wire_extra.get("meeting_metadata")
        meeting: Dict[str, Any] = dict(stored) if isinstance(stored, Mapping) else {}
        for name in _MEETING_FIELDS:
            value = getattr(obj.meeting_metadata, name)
            if value is not None:
                meeting[name] = value
        record["meeting_metadata"] = meeting
    return record


__all__ = [
    "detect_kind",
    "normalize_status",
    "parse_managed_object",
    "parse_managed_objects",
    "parse_meeting",
    "parse_modification",
    "serialize_managed_object",
    "serialize_modification",
]
