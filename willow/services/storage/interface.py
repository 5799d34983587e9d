"""
Abstract Storage Interface

DESIGN DECISION: Task flows only talk to this interface.
This allows us to:
1. Run fully in memory (demo mode and tests)
2. Persist to Google Sheets today and a database later
3. Keep rank arithmetic out of the storage code

Three operations matter for ordering:
- list_tasks() returns a lane already sorted by rank
- update_rank() is a single-field update guarded by the rank the caller
  last saw, so a concurrent reorder surfaces as ConflictError instead of
  silently overwriting.
- update_ranks() applies a whole batch of guarded rank writes or none of
  them; compaction goes through it.

Stores also expose subscribe(): every write is announced to the owner's
subscribers so cached lists can be dropped and re-fetched.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Optional
from uuid import UUID

import structlog

from willow.models.audit import AuditEvent
from willow.models.task import RankUpdate, Task, TaskChange, TaskLane, TaskStatus


ChangeCallback = Callable[[TaskChange], None]


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop callbacks."""

    def __init__(self, feed: "ChangeFeed", owner_id: str, callback: ChangeCallback):
        self._feed = feed
        self.owner_id = owner_id
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self)
            self.active = False


class ChangeFeed:
    """
    Per-owner callback registry shared by storage backends.
    """

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._logger = structlog.get_logger()

    def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        """Call `callback` after every write to `owner_id`'s tasks."""
        subscription = Subscription(self, owner_id, callback)
        self._subscriptions.setdefault(owner_id, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.owner_id, [])
        if subscription in subs:
            subs.remove(subscription)

    def _notify(self, change: TaskChange) -> None:
        for subscription in list(self._subscriptions.get(change.owner_id, [])):
            try:
                subscription.callback(change)
            except Exception as e:
                # A broken subscriber must not fail the write
                self._logger.error(
                    "task_change_callback_failed",
                    error=str(e),
                    owner_id=change.owner_id,
                    task_id=str(change.task_id),
                )


class TaskStorageInterface(ABC):
    """
    Abstract interface for task storage operations.

    Any storage implementation (in-memory, Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_task(self, task: Task) -> bool:
        """
        Save a new task.

        Returns:
            True if saved successfully

        Raises:
            DuplicateError: If a task with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_task(self, task_id: UUID) -> Optional[Task]:
        """
        Retrieve a task by its ID.

        Returns:
            The task if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_task(self, task: Task) -> bool:
        """
        Replace an existing task.

        Raises:
            NotFoundError: If the task doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def update_rank(
        self,
        task_id: UUID,
        rank: float,
        expected_rank: Optional[float] = None,
    ) -> Task:
        """
        Set a single task's rank.

        Args:
            task_id: Task to update
            rank: New rank
            expected_rank: If given, the update only applies when the stored
                rank still equals this value

        Returns:
            The updated task

        Raises:
            NotFoundError: If the task doesn't exist
            ConflictError: If the stored rank no longer matches expected_rank
        """
        pass

    @abstractmethod
    async def update_ranks(
        self,
        updates: Sequence[RankUpdate],
        expected_ranks: Optional[dict[UUID, float]] = None,
    ) -> list[Task]:
        """
        Set the ranks of several tasks as one all-or-nothing write.

        Every row is checked before any is written, so a lane is never
        left half-renumbered.

        Args:
            updates: New ranks, keyed by task id
            expected_ranks: Rank each task must still have for the batch
                to apply; tasks missing from the map are not checked

        Returns:
            The updated tasks, in the order of `updates`

        Raises:
            NotFoundError: If any task doesn't exist
            ConflictError: If any stored rank no longer matches
        """
        pass

    @abstractmethod
    async def delete_task(self, task_id: UUID) -> bool:
        """
        Delete a task by ID.

        Returns:
            True if a task was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_tasks(
        self,
        owner_id: str,
        lane: Optional[TaskLane] = None,
        status: Optional[TaskStatus] = None,
    ) -> list[Task]:
        """
        List an owner's tasks with optional filters.

        Returns:
            Matching tasks in ascending rank order (ties broken by
            creation time, then id)
        """
        pass

    @abstractmethod
    def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        """Register a callback fired after every write to the owner's tasks."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one drag and drop).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ConflictError(StorageError):
    """A guarded update found the row changed since it was read."""
    pass
