from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from changeportal.adapters.api_errors import (
    AuthRequired,
    NotFound,
    RetriesExhausted,
    Transient,
    ValidationRejected,
)
from changeportal.adapters.store_client import FetchFailure, StoreClient, collection_path

BASE = "http://portal.test"


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


class _ScriptedSession:
    """Answers calls in order from a script of responses or exceptions."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    def get(self, url, *, headers=None, timeout=None):
        self.calls.append(("GET", url, dict(headers or {})))
        return self._next()

    def send_json(self, method, url, *, json_body=None, headers=None, timeout=None):
        self.calls.append((method, url, json_body))
        return self._next()

    def _next(self):
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.sleeps.append(delay)
        self.now += delay


def _client(session, clock=None, **kwargs) -> StoreClient:
    clock = clock or _FakeClock()
    return StoreClient(BASE, session=session, clock=clock, sleep=clock.sleep, **kwargs)


def test_cache_hit_serves_second_read_without_network(caplog):
    session = _ScriptedSession(_FakeResponse(200, {"changeId": "C1"}, etag='"v1"'))
    client = _client(session)

    async def scenario():
        first = await client.fetch_tagged("/changes/C1")
        with caplog.at_level(logging.INFO, logger="changeportal.adapters.store_client"):
            second = await client.fetch_tagged("/changes/C1")
        return first, second

    first, second = asyncio.run(scenario())

    assert first == second
    assert first.token == '"v1"'
    assert len(session.calls) == 1
    assert "Cache hit for: /changes/C1" in caplog.text


def test_cache_entry_expires_after_ttl():
    clock = _FakeClock()
    session = _ScriptedSession(
        _FakeResponse(200, {"status": "draft"}),
        _FakeResponse(200, {"status": "submitted"}),
    )
    client = _client(session, clock, cache_ttl_s=300)

    async def scenario():
        await client.fetch("/changes/C1")
        clock.now += 299
        cached = await client.fetch("/changes/C1")
        clock.now += 2
        fresh = await client.fetch("/changes/C1")
        return cached, fresh

    cached, fresh = asyncio.run(scenario())

    assert cached == {"status": "draft"}
    assert fresh == {"status": "submitted"}
    assert len(session.calls) == 2


def test_skip_cache_refetches_and_refreshes_entry():
    session = _ScriptedSession(
        _FakeResponse(200, {"n": 1}),
        _FakeResponse(200, {"n": 2}),
    )
    client = _client(session)

    async def scenario():
        await client.fetch("/changes")
        bypass = await client.fetch("/changes", skip_cache=True)
        cached = await client.fetch("/changes")
        return bypass, cached

    bypass, cached = asyncio.run(scenario())

    assert bypass == {"n": 2}
    assert cached == {"n": 2}
    assert len(session.calls) == 2


def test_cache_key_includes_request_headers():
    assert StoreClient.cache_key("/changes") == "/changes:{}"
    assert StoreClient.cache_key("/changes", {"B": "2", "A": "1"}) == StoreClient.cache_key(
        "/changes", {"A": "1", "B": "2"}
    )
    assert StoreClient.cache_key("/changes", {"A": "1"}) != StoreClient.cache_key("/changes")


def test_update_invalidates_object_and_collection_entries():
    session = _ScriptedSession(
        _FakeResponse(200, [{"changeId": "C1", "status": "draft"}]),
        _FakeResponse(200, {"changeId": "C1", "status": "draft"}),
        _FakeResponse(200, {"changeId": "C9", "status": "draft"}),
        _FakeResponse(200, {"success": True}),
        _FakeResponse(200, [{"changeId": "C1", "status": "submitted"}]),
        _FakeResponse(200, {"changeId": "C1", "status": "submitted"}),
    )
    client = _client(session)

    async def scenario():
        await client.fetch("/changes")
        await client.fetch("/changes/C1")
        await client.fetch("/announcements/C9")
        await client.update("/changes/C1", {"status": "submitted"})
        collection = await client.fetch("/changes")
        single = await client.fetch("/changes/C1")
        untouched = await client.fetch("/announcements/C9")
        return collection, single, untouched

    collection, single, untouched = asyncio.run(scenario())

    assert collection[0]["status"] == "submitted"
    assert single["status"] == "submitted"
    assert untouched["changeId"] == "C9"
    assert session.calls[3] == ("PUT", f"{BASE}/changes/C1", {"status": "submitted"})
    assert len(session.calls) == 6


def test_update_with_object_path_invalidates_read_path():
    session = _ScriptedSession(
        _FakeResponse(200, {"status": "submitted"}),
        _FakeResponse(200, {"success": True}),
        _FakeResponse(200, {"status": "approved"}),
    )
    client = _client(session)

    async def scenario():
        await client.fetch("/changes/C1")
        await client.update(
            "/changes/C1/approve", {"status": "approved"}, method="post", object_path="/changes/C1"
        )
        return await client.fetch("/changes/C1")

    assert asyncio.run(scenario()) == {"status": "approved"}
    assert session.calls[1][0] == "POST"


def test_auth_failure_is_not_retried():
    clock = _FakeClock()
    session = _ScriptedSession(_FakeResponse(401, {"message": "session expired"}))
    client = _client(session, clock)

    with pytest.raises(AuthRequired) as excinfo:
        asyncio.run(client.fetch("/changes"))

    assert excinfo.value.status == 401
    assert "session expired" in str(excinfo.value)
    assert len(session.calls) == 1
    assert clock.sleeps == []


def test_not_found_is_raised_immediately():
    clock = _FakeClock()
    session = _ScriptedSession(_FakeResponse(404, {"error": "missing"}))
    client = _client(session, clock)

    with pytest.raises(NotFound):
        asyncio.run(client.fetch("/announcements"))

    assert len(session.calls) == 1
    assert clock.sleeps == []


def test_validation_rejected_carries_hint_and_code():
    session = _ScriptedSession(
        _FakeResponse(422, {"code": "bad_status", "hint": "status must be approved"})
    )
    client = _client(session)

    with pytest.raises(ValidationRejected) as excinfo:
        asyncio.run(client.update("/changes/C1", {"status": "bogus"}))

    assert excinfo.value.code == "bad_status"
    assert excinfo.value.hint == "status must be approved"
    assert len(session.calls) == 1


def test_server_errors_retry_with_exponential_backoff_then_exhaust():
    clock = _FakeClock()
    session = _ScriptedSession(
        _FakeResponse(503, {"detail": "busy"}),
        _FakeResponse(502),
        _FakeResponse(500, {"detail": "still down"}),
    )
    client = _client(session, clock, max_retries=3, retry_base_s=1.0)

    with pytest.raises(RetriesExhausted) as excinfo:
        asyncio.run(client.fetch("/changes"))

    err = excinfo.value
    assert err.attempts == 3
    assert isinstance(err.last_error, Transient)
    assert err.status == 500
    assert len(session.calls) == 3
    assert clock.sleeps == [1.0, 2.0]


def test_transport_failure_then_success_returns_payload():
    clock = _FakeClock()
    session = _ScriptedSession(
        Transient("Timeout contacting http://portal.test/changes"),
        _FakeResponse(200, [{"changeId": "C1"}]),
    )
    client = _client(session, clock)

    payload = asyncio.run(client.fetch("/changes"))

    assert payload == [{"changeId": "C1"}]
    assert clock.sleeps == [1.0]


def test_backoff_delay_doubles_per_attempt():
    client = _client(_ScriptedSession(), retry_base_s=0.5)
    assert [client.backoff_delay(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]


def test_max_retries_must_be_positive():
    with pytest.raises(ValueError):
        StoreClient(BASE, session=_ScriptedSession(), max_retries=0)


def test_conditional_fetch_not_modified():
    session = _ScriptedSession(_FakeResponse(304))
    client = _client(session)

    result = asyncio.run(client.fetch_if_changed("/changes/C1", '"v1"'))

    assert result.modified is False
    assert result.token == '"v1"'
    assert session.calls == [("GET", f"{BASE}/changes/C1", {"If-None-Match": '"v1"'})]


def test_conditional_fetch_modified_drops_stale_cache():
    session = _ScriptedSession(
        _FakeResponse(200, {"status": "approved"}, etag='"v1"'),
        _FakeResponse(200, {"status": "approved", "meeting_metadata": {}}, etag='"v2"'),
        _FakeResponse(200, {"status": "approved", "meeting_metadata": {}}, etag='"v2"'),
    )
    client = _client(session)

    async def scenario():
        tagged = await client.fetch_tagged("/changes/C1")
        result = await client.fetch_if_changed("/changes/C1", tagged.token)
        reread = await client.fetch_tagged("/changes/C1")
        return result, reread

    result, reread = asyncio.run(scenario())

    assert result.modified is True
    assert result.token == '"v2"'
    assert "meeting_metadata" in result.payload
    assert reread.token == '"v2"'
    assert len(session.calls) == 3


def test_fetch_multiple_reports_failures_per_path():
    responses = {
        f"{BASE}/changes": _FakeResponse(200, [{"changeId": "C1"}]),
        f"{BASE}/announcements": _FakeResponse(404),
    }
    session = _ScriptedSession()
    session.get = lambda url, **_: responses[url]
    client = _client(session)

    results = asyncio.run(client.fetch_multiple(["/changes", "/announcements"]))

    assert results[0] == [{"changeId": "C1"}]
    assert isinstance(results[1], FetchFailure)
    assert results[1].path == "/announcements"
    assert "HTTP 404" in results[1].message


def test_cache_stats_and_clear():
    clock = _FakeClock()
    session = _ScriptedSession(
        _FakeResponse(200, {"a": 1}),
        _FakeResponse(200, {"b": 2}),
    )
    client = _client(session, clock, cache_ttl_s=10)

    async def scenario():
        await client.fetch("/changes/C1")
        clock.now += 20
        await client.fetch("/changes/C2")

    asyncio.run(scenario())

    assert client.cache_stats() == {"total": 2, "valid": 1, "expired": 1, "ttl_s": 10.0}
    assert client.clear_cache("/changes/C1") == 1
    assert client.clear_cache() == 1
    assert client.cache_stats()["total"] == 0


def test_collection_path_of_object_paths():
    assert collection_path("/changes/C1") == "/changes"
    assert collection_path("/announcements/customer/acme") == "/announcements/customer"
    assert collection_path("/changes") is None


class _SlowReadSession:
    """Store whose first GET reads the current version, then stalls until released."""

    def __init__(self):
        self.version = "old"
        self.started = threading.Event()
        self.release = threading.Event()
        self.gets = 0

    def get(self, url, *, headers=None, timeout=None):
        self.gets += 1
        seen = self.version
        if self.gets == 1:
            self.started.set()
            self.release.wait(5)
        return _FakeResponse(200, {"changeId": "C1", "version": seen})

    def send_json(self, method, url, *, json_body=None, headers=None, timeout=None):
        self.version = "new"
        return _FakeResponse(200, {"changeId": "C1", "version": "new"})


def test_read_racing_an_update_is_not_cached():
    session = _SlowReadSession()
    client = _client(session)

    async def scenario():
        in_flight = asyncio.ensure_future(client.fetch("/changes/C1"))
        await asyncio.to_thread(session.started.wait, 5)
        await client.update("/changes/C1", {"changeId": "C1"})
        session.release.set()
        stale = await in_flight
        fresh = await client.fetch("/changes/C1")
        return stale, fresh

    stale, fresh = asyncio.run(scenario())

    assert stale["version"] == "old"
    assert fresh["version"] == "new"
    assert session.gets == 2
    assert client.cache_stats()["total"] == 1


def test_clear_cache_also_blocks_in_flight_write():
    session = _SlowReadSession()
    client = _client(session)

    async def scenario():
        in_flight = asyncio.ensure_future(client.fetch("/changes/C1"))
        await asyncio.to_thread(session.started.wait, 5)
        client.clear_cache()
        session.release.set()
        await in_flight

    asyncio.run(scenario())

    assert client.cache_stats()["total"] == 0
