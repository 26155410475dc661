from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from changeportal.adapters.object_rest import UPLOAD_PATH, ObjectRestAdapter
from changeportal.adapters.store_client import StoreClient
from changeportal.domain.entities import (
    ANNOUNCEMENT,
    APPROVED,
    CANCELLED,
    CHANGE,
    SUBMITTED,
    ManagedObject,
    ModificationEntry,
)

BASE = "http://portal.test"
WHEN = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, *, etag=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = {"ETag": etag} if etag else {}
        self.content = b"" if payload is None else b"{...}"
        self.text = ""

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class _RoutedSession:
    """Serves fixed responses keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, *, headers=None, timeout=None):
        return self._answer("GET", url, None)

    def send_json(self, method, url, *, json_body=None, headers=None, timeout=None):
        return self._answer(method, url, json_body)

    def _answer(self, method, url, body):
        path = url[len(BASE):]
        self.calls.append((method, path, body))
        return self.routes[(method, path)]


def _adapter(routes) -> tuple[ObjectRestAdapter, _RoutedSession]:
    session = _RoutedSession(routes)
    client = StoreClient(BASE, session=session)
    return ObjectRestAdapter(client), session


def _entry(kind: str) -> ModificationEntry:
    return ModificationEntry(timestamp=WHEN, actor_id="approver@example.com", type=kind)


def test_object_paths_per_kind():
    adapter, _ = _adapter({})

    assert adapter.object_path(CHANGE, "C1") == "/changes/C1"
    assert adapter.object_path(ANNOUNCEMENT, " A7 ") == "/announcements/A7"
    with pytest.raises(ValueError):
        adapter.object_path("incident", "X")
    with pytest.raises(ValueError):
        adapter.object_path(CHANGE, "  ")


def test_get_object_keeps_revalidation_token():
    record = {"changeId": "C1", "changeTitle": "Patch", "status": "submitted", "customers": ["acme"]}
    adapter, _ = _adapter({("GET", "/changes/C1"): _FakeResponse(200, record, etag='"e1"')})

    obj = asyncio.run(adapter.get_object(CHANGE, "C1"))

    assert obj.id == "C1"
    assert obj.status == SUBMITTED
    assert obj.title == "Patch"
    assert obj.revalidation_token == '"e1"'


def test_missing_announcements_endpoint_lists_nothing():
    adapter, _ = _adapter({("GET", "/announcements"): _FakeResponse(404)})

    assert asyncio.run(adapter.list_objects(ANNOUNCEMENT)) == []


def test_announcements_for_customer_use_customer_route():
    records = [{"announcement_id": "A1", "object_type": "announcement_finops", "status": "draft"}]
    adapter, session = _adapter(
        {("GET", "/announcements/customer/acme"): _FakeResponse(200, records)}
    )

    objects = asyncio.run(adapter.list_objects(ANNOUNCEMENT, customer="acme"))

    assert [obj.id for obj in objects] == ["A1"]
    assert objects[0].category == "finops"
    assert session.calls == [("GET", "/announcements/customer/acme", None)]


def test_changes_are_filtered_by_customer_locally():
    records = [
        {"changeId": "C1", "status": "draft", "customers": ["acme"]},
        {"changeId": "C2", "status": "draft", "customers": ["globex"]},
    ]
    adapter, _ = _adapter({("GET", "/changes"): _FakeResponse(200, records)})

    objects = asyncio.run(adapter.list_objects(CHANGE, customer="globex"))

    assert [obj.id for obj in objects] == ["C2"]


def test_approving_a_change_posts_to_approve_endpoint():
    adapter, session = _adapter(
        {("POST", "/changes/C1/approve"): _FakeResponse(200, {"success": True})}
    )
    current = ManagedObject(id="C1", kind=CHANGE, status=SUBMITTED, customers=("acme",))
    entry = _entry("approved")
    updated = current.with_transition(APPROVED, entry)

    stored = asyncio.run(adapter.persist_transition(updated, entry))

    method, path, body = session.calls[0]
    assert (method, path) == ("POST", "/changes/C1/approve")
    assert body["changeId"] == "C1"
    assert body["status"] == "approved"
    assert body["modifications"][-1] == {
        "timestamp": "2025-03-01T09:30:00.000Z",
        "user_id": "approver@example.com",
        "modification_type": "approved",
    }
    assert stored is updated


def test_other_change_transitions_put_the_full_record():
    echoed = {"changeId": "C1", "status": "cancelled", "customers": ["acme"], "version": 4}
    adapter, session = _adapter({("PUT", "/changes/C1"): _FakeResponse(200, echoed)})
    current = ManagedObject(id="C1", kind=CHANGE, status=SUBMITTED, customers=("acme",))
    entry = _entry("cancelled")

    stored = asyncio.run(adapter.persist_transition(current.with_transition(CANCELLED, entry), entry))

    assert session.calls[0][0] == "PUT"
    assert stored.status == CANCELLED
    assert stored.extra["version"] == 4


def test_announcement_transition_goes_through_upload_action():
    adapter, session = _adapter({("POST", UPLOAD_PATH): _FakeResponse(200, {"status": "ok"})})
    current = ManagedObject(
        id="A1", kind=ANNOUNCEMENT, status=SUBMITTED, customers=("acme", "globex"), category="cic"
    )
    entry = ModificationEntry(
        timestamp=WHEN, actor_id="ops", type="cancelled", payload={"reason": "duplicate"}
    )
    updated = current.with_transition(CANCELLED, entry)

    stored = asyncio.run(adapter.persist_transition(updated, entry))

    _, path, body = session.calls[0]
    assert path == "/api/upload"
    assert body == {
        "action": "update_announcement",
        "announcement_id": "A1",
        "status": "cancelled",
        "modification": {
            "timestamp": "2025-03-01T09:30:00.000Z",
            "user_id": "ops",
            "modification_type": "cancelled",
            "reason": "duplicate",
        },
        "customers": ["acme", "globex"],
    }
    # {"status": "ok"} is an acknowledgement, not a record.
    assert stored is updated


def test_fetch_if_changed_delegates_to_client():
    adapter, session = _adapter({("GET", "/announcements/A1"): _FakeResponse(304)})

    result = asyncio.run(adapter.fetch_if_changed("/announcements/A1", '"e9"'))

    assert result.modified is False
    assert session.calls == [("GET", "/announcements/A1", None)]
