"""
Data Models Package

This package contains all Pydantic models used in Willow.
"""

from willow.models.task import (
    ColorTheme,
    DayView,
    ListEdge,
    RankPlan,
    RankUpdate,
    Task,
    TaskChange,
    TaskLane,
    TaskStatus,
    utc_now,
)
from willow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Task models
    "ColorTheme",
    "DayView",
    "ListEdge",
    "RankPlan",
    "RankUpdate",
    "Task",
    "TaskChange",
    "TaskLane",
    "TaskStatus",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
