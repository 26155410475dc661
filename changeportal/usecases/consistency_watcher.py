"""Watch one store object until an asynchronous backend side effect lands.

Approving a change or announcement makes the backend schedule a meeting out of
band. There is no push channel, so the watcher polls the object's read path
with conditional GETs until a predicate holds, a deadline passes, or the
caller cancels.

States: ``idle -> polling -> {detected, timed_out, cancelled}``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from changeportal.adapters.api_errors import StoreError
from changeportal.domain.ports import RevalidationSource

IDLE = "idle"
POLLING = "polling"
DETECTED = "detected"
TIMED_OUT = "timed_out"
CANCELLED = "cancelled"
TERMINAL_STATES = frozenset({DETECTED, TIMED_OUT, CANCELLED})

Predicate = Callable[[Any], bool]


def _noop(*_: object, **__: object) -> None:
    """Default no-op callback used for hooks."""


def _identity(payload: Any) -> Any:
    return payload


@dataclass(frozen=True)
class WatchOptions:
    """Polling cadence: fast at first, slower after ``transition_after_s``."""

    initial_interval_s: float = 2.0
    later_interval_s: float = 5.0
    transition_after_s: float = 20.0
    max_duration_s: float = 60.0

    def __post_init__(self) -> None:
        if self.initial_interval_s <= 0 or self.later_interval_s <= 0:
            raise ValueError("Poll intervals must be positive.")
        if self.max_duration_s <= 0:
            raise ValueError("max_duration_s must be positive.")
        if self.transition_after_s < 0:
            raise ValueError("transition_after_s must not be negative.")

    def interval_at(self, elapsed_s: float) -> float:
        """Poll interval to use once ``elapsed_s`` seconds have passed."""
        if elapsed_s < self.transition_after_s:
            return self.initial_interval_s
        return self.later_interval_s


@dataclass(frozen=True)
class WatchOutcome:
    """Final result of a watch."""

    state: str
    path: str
    obj: Any = None
    """Refreshed object when ``state`` is ``detected``."""
    elapsed_s: float = 0.0
    polls: int = 0


@dataclass
class WatchHooks:
    """Callbacks fired once when a watch reaches a reportable end state."""

    on_detected: Callable[[WatchOutcome], None] = _noop
    on_timed_out: Callable[[WatchOutcome], None] = _noop

    def __post_init__(self) -> None:
        self.on_detected = self.on_detected or _noop
        self.on_timed_out = self.on_timed_out or _noop


class ConsistencyWatcher:
    """Poll ``path`` through conditional re-fetches until ``predicate`` holds.

    A not-modified answer costs no predicate evaluation. Poll failures and
    predicate errors are logged and polling continues. Each poll is bounded
    by the time left before ``max_duration_s``; timing out is a normal
    outcome and never raises. ``cancel()`` is synchronous: once it returns,
    the predicate is not evaluated again and no hook fires, even if a
    response is in flight.
    """

    def __init__(
        self,
        source: RevalidationSource,
        path: str,
        predicate: Predicate,
        *,
        options: Optional[WatchOptions] = None,
        decode: Callable[[Any], Any] = _identity,
        hooks: Optional[WatchHooks] = None,
        initial_token: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.source = source
        self.path = path
        self.predicate = predicate
        self.options = options or WatchOptions()
        self.decode = decode
        self.hooks = hooks or WatchHooks()
        self._token = initial_token
        self._clock = clock
        self._sleep = sleep
        self._state = IDLE
        self._started_at: Optional[float] = None
        self._polls = 0
        self._task: Optional[asyncio.Task] = None
        self._outcome: Optional[WatchOutcome] = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def outcome(self) -> Optional[WatchOutcome]:
        return self._outcome

    @property
    def polls(self) -> int:
        return self._polls

    def start(self) -> "asyncio.Task[WatchOutcome]":
        """Begin polling on the running event loop; the first poll is immediate."""
        if self._state != IDLE:
            raise RuntimeError(f"Watcher for {self.path} already {self._state}")
        self._state = POLLING
        self._started_at = self._clock()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"watch:{self.path}")
        return self._task

    def cancel(self) -> bool:
        """Stop the watch. Returns ``False`` if it had already finished."""
        if self._state in TERMINAL_STATES:
            return False
        self._state = CANCELLED
        self._outcome = WatchOutcome(
            state=CANCELLED, path=self.path, elapsed_s=self._elapsed(), polls=self._polls
        )
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._log.info("Consistency watch for %s cancelled", self.path)
        return True

    async def wait(self) -> WatchOutcome:
        """Wait for the watch to end and return its outcome."""
        if self._task is None:
            if self._outcome is not None:
                return self._outcome
            raise RuntimeError("Watcher has not been started")
        try:
            await self._task
        except asyncio.CancelledError:
            if self._state != CANCELLED or not self._task.done():
                raise
        assert self._outcome is not None
        return self._outcome

    # ------------------------------------------------------------------
    async def _run(self) -> WatchOutcome:
        self._log.info("Starting consistency watch for %s", self.path)
        deadline = self.options.max_duration_s
        while True:
            remaining = deadline - self._elapsed()
            if remaining <= 0:
                return self._finish(TIMED_OUT)

            try:
                result = await asyncio.wait_for(
                    self.source.fetch_if_changed(self.path, self._token), timeout=remaining
                )
            except asyncio.TimeoutError:
                self._log.warning("Poll of %s still pending at the deadline", self.path)
                return self._finish(TIMED_OUT)
            except StoreError as exc:
                self._log.warning("Poll of %s failed, continuing: %s", self.path, exc)
                result = None
            if self._state != POLLING:
                # Cancelled while the response was in flight; discard it.
                assert self._outcome is not None
                return self._outcome
            self._polls += 1

            if result is not None and result.modified:
                self._token = result.token
                try:
                    obj = self.decode(result.payload)
                except ValueError as exc:
                    self._log.warning("Ignoring malformed record at %s: %s", self.path, exc)
                else:
                    try:
                        matched = bool(self.predicate(obj))
                    except Exception:
                        self._log.exception("Predicate failed for %s, continuing to poll", self.path)
                        matched = False
                    if matched:
                        return self._finish(DETECTED, obj)
            else:
                self._log.debug("No changes at %s, continuing to poll", self.path)

            elapsed = self._elapsed()
            remaining = deadline - elapsed
            if remaining <= 0:
                return self._finish(TIMED_OUT)
            await self._sleep(min(self.options.interval_at(elapsed), remaining))

    def _finish(self, state: str, obj: Any = None) -> WatchOutcome:
        self._state = state
        self._outcome = WatchOutcome(
            state=state, path=self.path, obj=obj, elapsed_s=self._elapsed(), polls=self._polls
        )
        if state == DETECTED:
            self._log.info("Side effect detected at %s after %d polls", self.path, self._polls)
            self.hooks.on_detected(self._outcome)
        else:
            self._log.info(
                "Consistency watch for %s timed out after %.1fs", self.path, self._outcome.elapsed_s
            )
            self.hooks.on_timed_out(self._outcome)
        return self._outcome

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at


__all__ = [
    "CANCELLED",
    "ConsistencyWatcher",
    "DETECTED",
    "IDLE",
    "POLLING",
    "TIMED_OUT",
    "WatchHooks",
    "WatchOptions",
    "WatchOutcome",
]
