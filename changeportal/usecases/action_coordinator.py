"""Coordinator performing one user-intended workflow transition end to end."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from changeportal.domain.entities import APPROVED, CANCELLED, COMPLETED, SUBMITTED, ManagedObject, ModificationEntry
from changeportal.domain.errors import IllegalTransition
from changeportal.domain.object_normalizer import parse_managed_object
from changeportal.domain.ports import ObjectStorePort, UseCaseError
from changeportal.domain.time_utils import utc_now
from changeportal.domain.workflow import DEFAULT_WORKFLOW, WorkflowStateMachine
from changeportal.usecases.consistency_watcher import (
    ConsistencyWatcher,
    WatchHooks,
    WatchOptions,
    WatchOutcome,
)
from changeportal.usecases.error_mapping import VALIDATION_REJECTED, map_store_error


def _noop(*_: object, **__: object) -> None:
    """Default no-op callback used for hooks."""


def meeting_link_present(obj: ManagedObject) -> bool:
    """Predicate for the meeting side effect of an approval."""
    return obj.has_meeting_link


@dataclass(frozen=True)
class TransitionSucceeded:
    obj: ManagedObject
    """Object as persisted by the store."""
    previous_status: str
    entry: ModificationEntry
    watching: bool = False
    """Whether a side-effect watch was started for this transition."""


@dataclass(frozen=True)
class TransitionFailed:
    obj: ManagedObject
    """The caller's object, unchanged."""
    requested_status: str
    code: str
    message: str
    error: Optional[Exception] = field(default=None, compare=False)


@dataclass(frozen=True)
class SideEffectDetected:
    object_id: str
    obj: ManagedObject
    elapsed_s: float
    polls: int


@dataclass(frozen=True)
class SideEffectTimedOut:
    object_id: str
    kind: str
    elapsed_s: float
    polls: int


TransitionOutcome = Union[TransitionSucceeded, TransitionFailed]


@dataclass
class ActionHooks:
    """Callbacks receiving the coordinator's outcome events."""

    on_succeeded: Callable[[TransitionSucceeded], None] = _noop
    on_failed: Callable[[TransitionFailed], None] = _noop
    on_side_effect_detected: Callable[[SideEffectDetected], None] = _noop
    on_side_effect_timed_out: Callable[[SideEffectTimedOut], None] = _noop

    def __post_init__(self) -> None:
        self.on_succeeded = self.on_succeeded or _noop
        self.on_failed = self.on_failed or _noop
        self.on_side_effect_detected = self.on_side_effect_detected or _noop
        self.on_side_effect_timed_out = self.on_side_effect_timed_out or _noop


class ActionCoordinator:
    """Validate, persist, audit, and optionally watch a status transition.

    The coordinator is the only layer that turns store errors into outcome
    events. It never mutates the caller's object: on failure the event carries
    the original, on success it carries the persisted copy.
    """

    def __init__(
        self,
        store: ObjectStorePort,
        *,
        actor_id: str,
        hooks: Optional[ActionHooks] = None,
        workflow: WorkflowStateMachine = DEFAULT_WORKFLOW,
        watch_options: Optional[WatchOptions] = None,
        now: Callable[[], datetime] = utc_now,
        watch_clock: Callable[[], float] = time.monotonic,
        watch_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.store = store
        self.actor_id = actor_id
        self.hooks = hooks or ActionHooks()
        self.workflow = workflow
        self.watch_options = watch_options or WatchOptions()
        self._now = now
        self._watch_clock = watch_clock
        self._watch_sleep = watch_sleep
        self._watches: Dict[str, ConsistencyWatcher] = {}

    # ---------- Transitions ----------

    async def request_transition(
        self,
        obj: ManagedObject,
        requested_status: str,
        *,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> TransitionOutcome:
        """Move ``obj`` to ``requested_status`` and report the outcome.

        Emits ``on_succeeded`` or ``on_failed`` before returning. Illegal
        transitions fail without any store call.
        """
        if not self.workflow.validate_transition(obj.status, requested_status):
            error = IllegalTransition(obj.status, requested_status, object_id=obj.id)
            self._log.warning("%s", error)
            return self._fail(obj, requested_status, error)
        if requested_status == SUBMITTED and not obj.customers:
            error = UseCaseError(VALIDATION_REJECTED, "At least one customer is required to submit.")
            return self._fail(obj, requested_status, error)

        entry = ModificationEntry(
            timestamp=self._now(),
            actor_id=self.actor_id,
            type=self.workflow.entry_type_for(requested_status),
            payload=dict(payload or {}),
        )
        updated = obj.with_transition(requested_status, entry)
        self._log.info("%s %s: %s -> %s", obj.kind, obj.id, obj.status, requested_status)
        try:
            stored = await self.store.persist_transition(updated, entry)
        except Exception as exc:
            return self._fail(obj, requested_status, exc)

        watching = False
        if requested_status == APPROVED and obj.include_meeting:
            self._start_watch(stored)
            watching = True
        event = TransitionSucceeded(
            obj=stored, previous_status=obj.status, entry=entry, watching=watching
        )
        self.hooks.on_succeeded(event)
        return event

    async def perform(self, obj: ManagedObject, action: str, **payload: Any) -> TransitionOutcome:
        """Run a named action (``submit``, ``approve``, ``complete``, ``cancel``)."""
        try:
            target = self.workflow.actions[action]
        except KeyError as exc:
            raise ValueError(f"Unknown action: {action!r}") from exc
        return await self.request_transition(obj, target, payload=payload or None)

    async def submit(self, obj: ManagedObject) -> TransitionOutcome:
        return await self.request_transition(obj, SUBMITTED)

    async def approve(self, obj: ManagedObject) -> TransitionOutcome:
        return await self.request_transition(obj, APPROVED)

    async def complete(self, obj: ManagedObject) -> TransitionOutcome:
        return await self.request_transition(obj, COMPLETED)

    async def cancel(self, obj: ManagedObject, reason: Optional[str] = None) -> TransitionOutcome:
        payload = {"reason": reason} if reason else None
        return await self.request_transition(obj, CANCELLED, payload=payload)

    # ---------- Side-effect watches ----------

    def active_watches(self) -> Dict[str, ConsistencyWatcher]:
        return dict(self._watches)

    def cancel_watch(self, object_id: str) -> bool:
        watcher = self._watches.pop(object_id, None)
        if watcher is None:
            return False
        return watcher.cancel()

    def cancel_all_watches(self) -> None:
        for object_id in list(self._watches):
            self.cancel_watch(object_id)

    async def wait_for_watch(self, object_id: str) -> Optional[WatchOutcome]:
        watcher = self._watches.get(object_id)
        if watcher is None:
            return None
        return await watcher.wait()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _start_watch(self, obj: ManagedObject) -> ConsistencyWatcher:
        self.cancel_watch(obj.id)
        kind = obj.kind
        watcher = ConsistencyWatcher(
            self.store,
            self.store.object_path(kind, obj.id),
            meeting_link_present,
            options=self.watch_options,
            decode=lambda payload: parse_managed_object(payload, kind),
            hooks=WatchHooks(
                on_detected=lambda outcome: self._on_detected(obj.id, outcome),
                on_timed_out=lambda outcome: self._on_timed_out(obj.id, kind, outcome),
            ),
            clock=self._watch_clock,
            sleep=self._watch_sleep,
        )
        self._watches[obj.id] = watcher
        task = watcher.start()
        task.add_done_callback(lambda _task: self._forget_watch(obj.id, watcher))
        return watcher

    def _forget_watch(self, object_id: str, watcher: ConsistencyWatcher) -> None:
        if self._watches.get(object_id) is watcher:
            del self._watches[object_id]

    def _on_detected(self, object_id: str, outcome: WatchOutcome) -> None:
        self.hooks.on_side_effect_detected(
            SideEffectDetected(
                object_id=object_id,
                obj=outcome.obj,
                elapsed_s=outcome.elapsed_s,
                polls=outcome.polls,
            )
        )

    def _on_timed_out(self, object_id: str, kind: str, outcome: WatchOutcome) -> None:
        self.hooks.on_side_effect_timed_out(
            SideEffectTimedOut(
                object_id=object_id,
                kind=kind,
                elapsed_s=outcome.elapsed_s,
                polls=outcome.polls,
            )
        )

    def _fail(self, obj: ManagedObject, requested_status: str, exc: Exception) -> TransitionFailed:
        mapped = map_store_error(
            exc,
            default_code="TRANSITION_FAILED",
            default_message=f"Failed to move {obj.kind} {obj.id} to {requested_status}.",
        )
        self._log.error("Transition of %s %s failed [%s]: %s", obj.kind, obj.id, mapped.code, mapped.message)
        event = TransitionFailed(
            obj=obj,
            requested_status=requested_status,
            code=mapped.code,
            message=mapped.message,
            error=exc,
        )
        self.hooks.on_failed(event)
        return event


__all__ = [
    "ActionCoordinator",
    "ActionHooks",
    "SideEffectDetected",
    "SideEffectTimedOut",
    "TransitionFailed",
    "TransitionOutcome",
    "TransitionSucceeded",
    "meeting_link_present",
]
