"""Cosmetic labels and icons keyed by status, action, and audit entry type.

Presentation lookups only; the workflow graph lives in ``workflow.py``.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

STATUS_DISPLAY: Dict[str, Tuple[str, str]] = {
    "draft": ("Draft", "📝"),
    "submitted": ("Submitted", "📤"),
    "approved": ("Approved", "✅"),
    "completed": ("Completed", "🎯"),
    "cancelled": ("Cancelled", "❌"),
}

ACTION_LABELS: Dict[str, str] = {
    "submit": "Submit",
    "approve": "Approve",
    "complete": "Complete",
    "cancel": "Cancel",
}

MODIFICATION_DISPLAY: Dict[str, Tuple[str, str]] = {
    "created": ("Created", "✨"),
    "updated": ("Updated", "✏️"),
    "submitted": ("Submitted", "📤"),
    "approved": ("Approved", "✅"),
    "cancelled": ("Cancelled", "❌"),
    "completed": ("Completed", "✓"),
    "meeting_scheduled": ("Meeting Scheduled", "📅"),
    "meeting_cancelled": ("Meeting Cancelled", "🚫"),
}

CATEGORY_LABELS: Dict[str, str] = {
    "cic": "CIC (Cloud Innovator Community)",
    "finops": "FinOps",
    "innersource": "Innersource Guild",
    "general": "General",
}


def status_label(status: str) -> str:
    return STATUS_DISPLAY.get(status, (status.title(), ""))[0]


def status_icon(status: str) -> str:
    return STATUS_DISPLAY.get(status, ("", "❓"))[1]


def modification_label(entry_type: str) -> str:
    display = MODIFICATION_DISPLAY.get(entry_type)
    if display:
        return display[0]
    return entry_type.replace("_", " ").title()


def category_label(category: Optional[str]) -> str:
    if not category:
        return CATEGORY_LABELS["general"]
    return CATEGORY_LABELS.get(category.lower(), category)


__all__ = [
    "ACTION_LABELS",
    "CATEGORY_LABELS",
    "MODIFICATION_DISPLAY",
    "STATUS_DISPLAY",
    "category_label",
    "modification_label",
    "status_icon",
    "status_label",
]
