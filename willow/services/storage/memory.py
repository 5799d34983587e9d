"""
In-Memory Storage Implementation

Backs demo mode (no backend configured) and the test suite.
Stored tasks are copies: mutating a returned task never changes the store
until it is written back.
"""

import math
from collections.abc import Iterable, Sequence
from typing import Optional
from uuid import UUID

from willow.models.audit import AuditEvent
from willow.models.task import RankUpdate, Task, TaskChange, TaskLane, TaskStatus, utc_now
from willow.ranking import sort_by_rank
from willow.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    ChangeFeed,
    ConflictError,
    DuplicateError,
    NotFoundError,
    StorageError,
    Subscription,
    TaskStorageInterface,
)


class InMemoryTaskStorage(TaskStorageInterface):
    """Dictionary-backed task storage."""

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self._tasks: dict[UUID, Task] = {}
        self._feed = ChangeFeed()
        for task in tasks or []:
            self._tasks[task.id] = task.model_copy(deep=True)

    def _announce(self, task: Task, change_type: str) -> None:
        self._feed._notify(TaskChange(
            owner_id=task.owner_id,
            task_id=task.id,
            change_type=change_type,
        ))

    async def save_task(self, task: Task) -> bool:
        if task.id in self._tasks:
            raise DuplicateError(f"Task already exists: {task.id}")
        self._tasks[task.id] = task.model_copy(deep=True)
        self._announce(task, "created")
        return True

    async def get_task(self, task_id: UUID) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update_task(self, task: Task) -> bool:
        if task.id not in self._tasks:
            raise NotFoundError(f"Task not found: {task.id}")
        task.updated_at = utc_now()
        self._tasks[task.id] = task.model_copy(deep=True)
        self._announce(task, "updated")
        return True

    async def update_rank(
        self,
        task_id: UUID,
        rank: float,
        expected_rank: Optional[float] = None,
    ) -> Task:
        current = self._tasks.get(task_id)
        if current is None:
            raise NotFoundError(f"Task not found: {task_id}")
        if not math.isfinite(rank):
            raise StorageError(f"Refusing non-finite rank for task {task_id}: {rank}")
        if expected_rank is not None and current.rank != expected_rank:
            raise ConflictError(
                f"Rank of task {task_id} changed: expected {expected_rank}, "
                f"found {current.rank}"
            )
        updated = current.model_copy(update={"rank": rank, "updated_at": utc_now()})
        self._tasks[task_id] = updated
        self._announce(updated, "updated")
        return updated.model_copy(deep=True)

    async def update_ranks(
        self,
        updates: Sequence[RankUpdate],
        expected_ranks: Optional[dict[UUID, float]] = None,
    ) -> list[Task]:
        expected_ranks = expected_ranks or {}
        # Check the whole batch first; nothing is written unless all of it applies
        for update in updates:
            current = self._tasks.get(update.item_id)
            if current is None:
                raise NotFoundError(f"Task not found: {update.item_id}")
            expected = expected_ranks.get(update.item_id)
            if expected is not None and current.rank != expected:
                raise ConflictError(
                    f"Rank of task {update.item_id} changed: expected {expected}, "
                    f"found {current.rank}"
                )

        now = utc_now()
        written = []
        for update in updates:
            updated = self._tasks[update.item_id].model_copy(
                update={"rank": update.rank, "updated_at": now}
            )
            self._tasks[update.item_id] = updated
            written.append(updated)
        for task in written:
            self._announce(task, "updated")
        return [task.model_copy(deep=True) for task in written]

    async def delete_task(self, task_id: UUID) -> bool:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        self._announce(task, "deleted")
        return True

    async def list_tasks(
        self,
        owner_id: str,
        lane: Optional[TaskLane] = None,
        status: Optional[TaskStatus] = None,
    ) -> list[Task]:
        matching = [
            task for task in self._tasks.values()
            if task.owner_id == owner_id
            and (lane is None or task.lane == lane)
            and (status is None or task.status == status)
        ]
        return [task.model_copy(deep=True) for task in sort_by_rank(matching)]

    def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        return self._feed.subscribe(owner_id, callback)


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
