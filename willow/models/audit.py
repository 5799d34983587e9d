"""
Audit Models for Willow

Every user action on a task is logged for audit purposes.
This provides:
1. Traceability of reorders and lane changes
2. Debugging information when a list ends up in an odd order
3. A record of compactions and storage conflicts

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from willow.models.task import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Task lifecycle
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    ONBOARDING_SEEDED = "onboarding_seeded"

    # Ordering
    TASK_REORDERED = "task_reordered"
    TASK_MOVED = "task_moved"
    LANE_COMPACTED = "lane_compacted"

    # Status
    TASK_COMPLETED = "task_completed"
    TASK_REOPENED = "task_reopened"
    TASK_ARCHIVED = "task_archived"
    DAY_WRAPPED = "day_wrapped"

    # Persistence
    STORAGE_CONFLICT = "storage_conflict"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    owner_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'task', 'lane')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one drag and drop)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.task_created(owner_id, task_id, title, rank, correlation_id)
        event = AuditEventBuilder.task_reordered(owner_id, task_id, old, new, correlation_id)
    """

    @staticmethod
    def task_created(
        owner_id: str,
        task_id: UUID,
        title: str,
        rank: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_CREATED,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description=f"Task created: {title[:80]}",
            details={"rank": rank},
            is_user_action=True,
        )

    @staticmethod
    def task_updated(
        owner_id: str,
        task_id: UUID,
        fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_UPDATED,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description=f"Task updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def task_deleted(
        owner_id: str,
        task_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_DELETED,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description="Task deleted",
            is_user_action=True,
        )

    @staticmethod
    def task_reordered(
        owner_id: str,
        task_id: UUID,
        old_rank: float,
        new_rank: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_REORDERED,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description="Task reordered",
            details={"old_rank": old_rank, "new_rank": new_rank},
            is_user_action=True,
        )

    @staticmethod
    def task_moved(
        owner_id: str,
        task_id: UUID,
        from_lane: str,
        to_lane: str,
        new_rank: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_MOVED,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description=f"Task moved from {from_lane} to {to_lane}",
            details={
                "from_lane": from_lane,
                "to_lane": to_lane,
                "new_rank": new_rank,
            },
            is_user_action=True,
        )

    @staticmethod
    def lane_compacted(
        owner_id: str,
        lane: str,
        item_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LANE_COMPACTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="lane",
            correlation_id=correlation_id,
            description=f"Lane {lane} compacted: {item_count} ranks rewritten",
            details={"lane": lane, "item_count": item_count},
        )

    @staticmethod
    def completion_toggled(
        owner_id: str,
        task_id: UUID,
        done: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.TASK_COMPLETED
                if done
                else AuditEventType.TASK_REOPENED
            ),
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description="Task completed" if done else "Task reopened",
            is_user_action=True,
        )

    @staticmethod
    def task_archived(
        owner_id: str,
        task_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_ARCHIVED,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description="Task archived",
            is_user_action=True,
        )

    @staticmethod
    def day_wrapped(
        owner_id: str,
        task_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DAY_WRAPPED,
            owner_id=owner_id,
            entity_type="lane",
            correlation_id=correlation_id,
            description=f"Day wrapped: {task_count} done tasks rolled to tomorrow",
            details={"task_count": task_count},
            is_user_action=True,
        )

    @staticmethod
    def onboarding_seeded(
        owner_id: str,
        task_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ONBOARDING_SEEDED,
            owner_id=owner_id,
            description=f"Seeded {task_count} onboarding tasks",
            details={"task_count": task_count},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_conflict(
        owner_id: str,
        task_id: Optional[UUID],
        attempt: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_CONFLICT,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="task",
            entity_id=task_id,
            correlation_id=correlation_id,
            description=f"Write conflict on attempt {attempt}; re-fetching",
            details={"attempt": attempt},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
