"""Domain package exports for value objects and workflow rules."""

from .entities import (
    ANNOUNCEMENT,
    APPROVED,
    CANCELLED,
    CHANGE,
    COMPLETED,
    DRAFT,
    SUBMITTED,
    ManagedObject,
    MeetingMetadata,
    ModificationEntry,
)
from .errors import IllegalTransition
from .object_normalizer import parse_managed_object, serialize_managed_object
from .workflow import DEFAULT_WORKFLOW, TRANSITIONS, WorkflowStateMachine, validate_transition

__all__ = [
    "ANNOUNCEMENT",
    "APPROVED",
    "CANCELLED",
    "CHANGE",
    "COMPLETED",
    "DEFAULT_WORKFLOW",
    "DRAFT",
    "IllegalTransition",
    "ManagedObject",
    "MeetingMetadata",
    "ModificationEntry",
    "SUBMITTED",
    "TRANSITIONS",
    "WorkflowStateMachine",
    "parse_managed_object",
    "serialize_managed_object",
    "validate_transition",
]
