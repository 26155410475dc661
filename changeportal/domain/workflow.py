"""Workflow state machine shared by changes and announcements.

The transition graph is data: ``TRANSITIONS`` is the single table every
transition request is checked against, and ``ACTIONS`` names the user-facing
actions that produce each target status. Both object kinds share the graph;
kind-specific wording lives in ``status_display``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from .entities import (
    APPROVED,
    CANCELLED,
    COMPLETED,
    DRAFT,
    KINDS,
    SUBMITTED,
    ManagedObject,
)

TRANSITIONS: Mapping[str, FrozenSet[str]] = MappingProxyType(
    {
        DRAFT: frozenset({SUBMITTED, CANCELLED}),
        SUBMITTED: frozenset({APPROVED, CANCELLED}),
        APPROVED: frozenset({COMPLETED, CANCELLED}),
        COMPLETED: frozenset(),
        CANCELLED: frozenset(),
    }
)

ACTIONS: Mapping[str, str] = MappingProxyType(
    {
        "submit": SUBMITTED,
        "approve": APPROVED,
        "complete": COMPLETED,
        "cancel": CANCELLED,
    }
)

# Audit entry type written when an object enters each status.
ENTRY_TYPES: Mapping[str, str] = MappingProxyType(
    {
        DRAFT: "created",
        SUBMITTED: "submitted",
        APPROVED: "approved",
        COMPLETED: "completed",
        CANCELLED: "cancelled",
    }
)

DELETABLE_STATUSES: FrozenSet[str] = frozenset({DRAFT, CANCELLED})

_STATUS_FOR_ENTRY = {entry: status for status, entry in ENTRY_TYPES.items()}


class WorkflowStateMachine:
    """Pure lookups over the transition and action tables."""

    def __init__(
        self,
        transitions: Mapping[str, FrozenSet[str]] = TRANSITIONS,
        actions: Mapping[str, str] = ACTIONS,
    ) -> None:
        self.transitions = transitions
        self.actions = actions

    def next_statuses(self, kind: str, status: str) -> FrozenSet[str]:
        if kind not in KINDS:
            return frozenset()
        return self.transitions.get(status, frozenset())

    def available_actions(self, kind: str, status: str) -> Tuple[str, ...]:
        """Actions a user may take from ``status``, in table order."""
        legal = self.next_statuses(kind, status)
        return tuple(action for action, target in self.actions.items() if target in legal)

    def validate_transition(self, current: str, requested: str) -> bool:
        return requested in self.transitions.get(current, frozenset())

    def action_for(self, status: str) -> Optional[str]:
        for action, target in self.actions.items():
            if target == status:
                return action
        return None

    def is_terminal(self, status: str) -> bool:
        return status in self.transitions and not self.transitions[status]

    @staticmethod
    def can_delete(status: str) -> bool:
        return status in DELETABLE_STATUSES

    @staticmethod
    def entry_type_for(status: str) -> str:
        return ENTRY_TYPES[status]

    @staticmethod
    def is_history_consistent(obj: ManagedObject) -> bool:
        """Check that the latest status-changing audit entry matches ``obj.status``.

        Records without any status-changing entry (legacy uploads) are accepted.
        """
        for entry in reversed(obj.modifications):
            status = _STATUS_FOR_ENTRY.get(entry.type)
            if status is not None:
                return status == obj.status
        return True


DEFAULT_WORKFLOW = WorkflowStateMachine()


def validate_transition(current: str, requested: str) -> bool:
    return DEFAULT_WORKFLOW.validate_transition(current, requested)


__all__ = [
    "ACTIONS",
    "DEFAULT_WORKFLOW",
    "DELETABLE_STATUSES",
    "ENTRY_TYPES",
    "TRANSITIONS",
    "WorkflowStateMachine",
    "validate_transition",
]
