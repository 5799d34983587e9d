"""
Audit Logger

DESIGN DECISION: Every change to a user's lists is logged.
This provides:
1. Traceability of every reorder (old rank, new rank)
2. Visibility into compactions and write conflicts
3. Debugging capability when an order looks wrong

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from willow.models.audit import AuditEvent, AuditEventBuilder
from willow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_task_created(
        self,
        owner_id: str,
        task_id: UUID,
        title: str,
        rank: float,
        correlation_id: UUID,
    ) -> None:
        """Log task creation."""
        await self.log(AuditEventBuilder.task_created(
            owner_id=owner_id,
            task_id=task_id,
            title=title,
            rank=rank,
            correlation_id=correlation_id,
        ))

    async def log_task_updated(
        self,
        owner_id: str,
        task_id: UUID,
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.task_updated(
            owner_id=owner_id,
            task_id=task_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_task_deleted(
        self,
        owner_id: str,
        task_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.task_deleted(
            owner_id=owner_id,
            task_id=task_id,
            correlation_id=correlation_id,
        ))

    async def log_task_reordered(
        self,
        owner_id: str,
        task_id: UUID,
        old_rank: float,
        new_rank: float,
        correlation_id: UUID,
    ) -> None:
        """Log a reorder within one lane."""
        await self.log(AuditEventBuilder.task_reordered(
            owner_id=owner_id,
            task_id=task_id,
            old_rank=old_rank,
            new_rank=new_rank,
            correlation_id=correlation_id,
        ))

    async def log_task_moved(
        self,
        owner_id: str,
        task_id: UUID,
        from_lane: str,
        to_lane: str,
        new_rank: float,
        correlation_id: UUID,
    ) -> None:
        """Log a move between lanes."""
        await self.log(AuditEventBuilder.task_moved(
            owner_id=owner_id,
            task_id=task_id,
            from_lane=from_lane,
            to_lane=to_lane,
            new_rank=new_rank,
            correlation_id=correlation_id,
        ))

    async def log_lane_compacted(
        self,
        owner_id: str,
        lane: str,
        item_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.lane_compacted(
            owner_id=owner_id,
            lane=lane,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_completion_toggled(
        self,
        owner_id: str,
        task_id: UUID,
        done: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.completion_toggled(
            owner_id=owner_id,
            task_id=task_id,
            done=done,
            correlation_id=correlation_id,
        ))

    async def log_task_archived(
        self,
        owner_id: str,
        task_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.task_archived(
            owner_id=owner_id,
            task_id=task_id,
            correlation_id=correlation_id,
        ))

    async def log_day_wrapped(
        self,
        owner_id: str,
        task_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.day_wrapped(
            owner_id=owner_id,
            task_count=task_count,
            correlation_id=correlation_id,
        ))

    async def log_onboarding_seeded(
        self,
        owner_id: str,
        task_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.onboarding_seeded(
            owner_id=owner_id,
            task_count=task_count,
            correlation_id=correlation_id,
        ))

    async def log_storage_conflict(
        self,
        owner_id: str,
        task_id: Optional[UUID],
        attempt: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a guarded write that lost a race."""
        await self.log(AuditEventBuilder.storage_conflict(
            owner_id=owner_id,
            task_id=task_id,
            attempt=attempt,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., one drag and drop).
    Pass it through all subsequent operations.
    """
    return uuid4()
