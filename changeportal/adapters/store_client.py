"""Caching, retrying asynchronous client for the remote object store.

Dependencies:
    - ``changeportal.adapters.http_client.StoreSession`` (``requests``) for the
      blocking transport, executed through ``asyncio.to_thread``.
    - ``changeportal.adapters.api_errors`` for status classification.

Call context:
    - Constructed by ``changeportal/app/main.py`` and handed to
      ``ObjectRestAdapter``; the consistency watcher polls through
      ``fetch_if_changed``.
    - Every cache access happens on the event loop thread after the transport
      await returns, so the cache needs no locking.
    - Invalidation bumps a generation counter; a GET whose request started
      before the bump returns its body but does not cache it.

The cache is an unbounded dict with a fixed TTL. Entries are only dropped when
they are read after expiry or invalidated by an update, so a long session
accumulates one entry per distinct path and header set.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

import requests

from changeportal.adapters.api_errors import (
    RetriesExhausted,
    StoreError,
    Transient,
    error_from_response,
)
from changeportal.adapters.http_client import HttpConfig, StoreSession

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

NOT_MODIFIED = 304


@dataclass(frozen=True)
class Tagged:
    """Parsed response body together with the store's ETag."""

    payload: Any
    token: Optional[str] = None


@dataclass(frozen=True)
class Revalidation:
    """Outcome of a conditional re-fetch."""

    modified: bool
    payload: Any = None
    token: Optional[str] = None


@dataclass(frozen=True)
class FetchFailure:
    """Per-path failure entry returned by ``fetch_multiple``."""

    path: str
    message: str


@dataclass
class _CacheEntry:
    value: Tagged
    cached_at: float


def collection_path(path: str) -> Optional[str]:
    """Return the parent collection of an object path (``/changes/42`` -> ``/changes``)."""
    trimmed = path.rstrip("/")
    if "/" not in trimmed:
        return None
    parent = trimmed.rsplit("/", 1)[0]
    return parent or None


class StoreClient:
    """Read-through cache plus retry/backoff around the store's REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[StoreSession] = None,
        api_key: Optional[str] = None,
        request_timeout_s: float = 10.0,
        cache_ttl_s: float = 300.0,
        max_retries: int = 3,
        retry_base_s: float = 1.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._log = logging.getLogger(__name__)
        self.base_url = base_url.rstrip("/")
        self.cfg = HttpConfig(request_timeout_s=request_timeout_s)
        self.session = session or StoreSession(api_key, self.cfg)
        self.cache_ttl_s = float(cache_ttl_s)
        self.max_retries = int(max_retries)
        self.retry_base_s = float(retry_base_s)
        self._clock = clock
        self._sleep = sleep
        self._cache: Dict[str, _CacheEntry] = {}
        self._generation = 0

    # ---------- Reads ----------

    async def fetch(
        self,
        path: str,
        *,
        skip_cache: bool = False,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Return the parsed object or collection stored at ``path``."""
        tagged = await self.fetch_tagged(path, skip_cache=skip_cache, headers=headers)
        return tagged.payload

    async def fetch_tagged(
        self,
        path: str,
        *,
        skip_cache: bool = False,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Tagged:
        """Like ``fetch`` but keeps the ETag the store sent with the body."""
        key = self.cache_key(path, headers)
        if not skip_cache:
            cached = self._get_cached(key)
            if cached is not None:
                self._log.info("Cache hit for: %s", path)
                return cached

        generation = self._generation
        url = self._url(path)
        extra = dict(headers or {})
        response = await self._with_retries(
            f"GET {path}",
            lambda: self.session.get(url, headers=extra, timeout=self.cfg.request_timeout_s),
        )
        tagged = Tagged(
            payload=self._json(response, f"GET {path}"),
            token=_etag(response),
        )
        if generation == self._generation:
            self._cache[key] = _CacheEntry(value=tagged, cached_at=self._clock())
        else:
            self._log.debug("Not caching %s: invalidated while in flight", path)
        self._log.debug("Fetched %s (etag=%s)", path, tagged.token)
        return tagged

    async def fetch_if_changed(self, path: str, token: Optional[str]) -> Revalidation:
        """Conditional GET: ask the store whether ``path`` changed since ``token``.

        Never served from the cache. A modified response drops cached entries
        for the path so later reads cannot return the superseded body.
        """
        headers = {"If-None-Match": token} if token else {}
        url = self._url(path)
        response = await self._with_retries(
            f"GET {path}",
            lambda: self.session.get(url, headers=headers, timeout=self.cfg.request_timeout_s),
            allow_not_modified=True,
        )
        if response.status_code == NOT_MODIFIED:
            return Revalidation(modified=False, token=token)
        payload = self._json(response, f"GET {path}")
        self._invalidate_keys(path)
        return Revalidation(modified=True, payload=payload, token=_etag(response) or token)

    async def fetch_multiple(
        self,
        paths: Sequence[str],
        *,
        skip_cache: bool = False,
    ) -> List[Union[Any, FetchFailure]]:
        """Fetch several paths concurrently; failures become ``FetchFailure`` entries."""

        async def _one(path: str) -> Union[Any, FetchFailure]:
            try:
                return await self.fetch(path, skip_cache=skip_cache)
            except StoreError as exc:
                return FetchFailure(path=path, message=str(exc))

        return list(await asyncio.gather(*(_one(path) for path in paths)))

    # ---------- Writes ----------

    async def update(
        self,
        path: str,
        body: Any,
        *,
        method: str = "PUT",
        object_path: Optional[str] = None,
    ) -> Any:
        """Send a mutating call and invalidate the affected cache entries.

        Args:
            path: Endpoint that receives the mutation.
            body: JSON-serializable payload (the full object for PUT).
            method: ``PUT`` or ``POST``.
            object_path: Read path of the mutated object when it differs from
                ``path`` (action endpoints such as ``/changes/<id>/approve``).

        Returns:
            The parsed response body.
        """
        verb = method.upper()
        url = self._url(path)
        response = await self._with_retries(
            f"{verb} {path}",
            lambda: self.session.send_json(
                verb, url, json_body=body, timeout=self.cfg.request_timeout_s
            ),
        )
        payload = self._json(response, f"{verb} {path}")
        self.invalidate(object_path or path)
        return payload

    # ---------- Cache ----------

    @staticmethod
    def cache_key(path: str, headers: Optional[Mapping[str, str]] = None) -> str:
        options = {"headers": dict(sorted((headers or {}).items()))} if headers else {}
        return f"{path}:{json.dumps(options, sort_keys=True)}"

    def invalidate(self, path: str) -> int:
        """Drop cache entries derived from ``path`` or its parent collection."""
        removed = self._invalidate_keys(path)
        parent = collection_path(path)
        if parent:
            removed += self._invalidate_keys(parent)
        self._log.debug("Invalidated %d cache entries for %s", removed, path)
        return removed

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        if pattern is None:
            removed = len(self._cache)
            self._cache.clear()
            self._generation += 1
        else:
            removed = self._invalidate_keys(pattern)
        self._log.info("Cache cleared (%d entries)", removed)
        return removed

    def cache_stats(self) -> Dict[str, Any]:
        now = self._clock()
        valid = sum(1 for entry in self._cache.values() if now - entry.cached_at <= self.cache_ttl_s)
        return {
            "total": len(self._cache),
            "valid": valid,
            "expired": len(self._cache) - valid,
            "ttl_s": self.cache_ttl_s,
        }

    def _get_cached(self, key: str) -> Optional[Tagged]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.cached_at > self.cache_ttl_s:
            del self._cache[key]
            return None
        return entry.value

    def _invalidate_keys(self, pattern: str) -> int:
        self._generation += 1
        doomed = [key for key in self._cache if pattern in key]
        for key in doomed:
            del self._cache[key]
        return len(doomed)

    # ---------- Retry policy ----------

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after 0-indexed ``attempt``."""
        return self.retry_base_s * (2 ** attempt)

    async def _with_retries(
        self,
        context: str,
        call: Callable[[], requests.Response],
        *,
        allow_not_modified: bool = False,
    ) -> requests.Response:
        last_err: Optional[StoreError] = None
        for attempt in range(self.max_retries):
            self._log.debug("%s (attempt %d/%d)", context, attempt + 1, self.max_retries)
            try:
                response = await asyncio.to_thread(call)
                if not (allow_not_modified and response.status_code == NOT_MODIFIED):
                    self._ensure_ok(response, context)
                return response
            except Transient as exc:
                last_err = exc
                self._log.warning("%s attempt %d failed: %s", context, attempt + 1, exc)
            if attempt < self.max_retries - 1:
                delay = self.backoff_delay(attempt)
                self._log.info("Waiting %.1fs before retrying %s", delay, context)
                await self._sleep(delay)

        raise RetriesExhausted(
            f"{context}: failed after {self.max_retries} attempts: {last_err}",
            attempts=self.max_retries,
            last_error=last_err,
            context=context,
        ) from last_err

    @staticmethod
    def _ensure_ok(resp: requests.Response, ctx: str) -> None:
        """Raise the classified store error for non-2xx responses."""
        error = error_from_response(resp, ctx)
        if error is not None:
            raise error

    @staticmethod
    def _json(resp: requests.Response, ctx: str) -> Any:
        if resp.status_code == 204 or not getattr(resp, "content", b"x"):
            return None
        try:
            return resp.json()
        except ValueError as exc:
            snippet = (getattr(resp, "text", "") or "")[:400]
            raise StoreError(
                f"{ctx}: invalid JSON response: {snippet}",
                status=resp.status_code,
                context=ctx,
            ) from exc

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"


def _etag(resp: requests.Response) -> Optional[str]:
    headers = getattr(resp, "headers", None) or {}
    value = headers.get("ETag") or headers.get("etag")
    return str(value) if value else None


__all__ = [
    "FetchFailure",
    "Revalidation",
    "StoreClient",
    "Tagged",
    "collection_path",
]
