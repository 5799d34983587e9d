"""
Main Orchestrator for Willow

This module ties together ranking, storage and audit, and defines the
end-to-end flows for:
1. Adding a task (smart input -> title/due date -> rank at stream head)
2. Reordering (drag and drop -> plan_move -> guarded rank write)
3. Lane changes (park, unpark, archive, complete)
4. Daily housekeeping (wrap the day, onboarding seed, day view)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Rank arithmetic happens only in willow.ranking (pure functions)
- Every rank write is guarded by the rank we planned against, and a lost
  race re-runs the whole operation against fresh data
- A compaction is written as one all-or-nothing batch
- Every step is audited, including failures, which are then re-raised

Context (owner, selected day, "now") is passed on every call; the flow
keeps no per-user session state.
"""

import random
from datetime import date, datetime, time, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID, uuid4

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from willow.audit import AuditLogger, create_correlation_id
from willow.config import AppSettings, RankingSettings, get_settings
from willow.models.task import (
    ColorTheme,
    DayView,
    ListEdge,
    RankPlan,
    Task,
    TaskChange,
    TaskLane,
    TaskStatus,
    utc_now,
)
from willow.parsing import parse_smart_input, suggest_emoji
from willow.ranking import MoveTarget, compact, plan_move, rank_for_tail
from willow.services.storage import (
    ConflictError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTaskStorage,
    InMemoryAuditStorage,
    InMemoryTaskStorage,
    NotFoundError,
    Subscription,
    TaskStorageInterface,
)


T = TypeVar("T")

NEW_TASK_COLORS = [
    ColorTheme.MATCHA,
    ColorTheme.CLAY,
    ColorTheme.LAVENDER,
    ColorTheme.SAGE,
]

# Fields update_task() may change; status and rank have dedicated operations
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "priority",
    "due_date",
    "color_theme",
    "emoji",
})


class TaskFlowError(Exception):
    """Base exception for task flows."""
    pass


class TaskNotFoundError(TaskFlowError):
    """The task does not exist or belongs to another owner."""

    def __init__(self, task_id, owner_id: str):
        self.task_id = task_id
        self.owner_id = owner_id
        super().__init__(f"Task {task_id} not found for owner {owner_id}")


class InvalidChangeError(TaskFlowError, ValueError):
    """update_task() was asked to change a field it does not manage."""
    pass


def _start_of_day(day: date) -> datetime:
    if isinstance(day, datetime):
        return day
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _onboarding_tasks(owner_id: str, now: datetime) -> list[Task]:
    """The four example tasks a brand new user starts with."""
    return [
        Task(
            owner_id=owner_id,
            title="Example: Buy Matcha 🍵",
            due_date=now,
            status=TaskStatus.TODO,
            color_theme=ColorTheme.MATCHA,
            priority=4,
            emoji="🛒",
            rank=1000.0,
        ),
        Task(
            owner_id=owner_id,
            title="Dinner at 7pm (Check Calendar 📅)",
            due_date=now.replace(hour=19, minute=0, second=0, microsecond=0),
            status=TaskStatus.TODO,
            color_theme=ColorTheme.CLAY,
            priority=4,
            emoji="🍽️",
            rank=2000.0,
        ),
        Task(
            owner_id=owner_id,
            title="Check the Parking Lot ↖️ (Someday list)",
            due_date=None,
            status=TaskStatus.PARKED,
            color_theme=ColorTheme.LAVENDER,
            priority=4,
            emoji="🅿️",
            rank=3000.0,
        ),
        Task(
            owner_id=owner_id,
            title="Scan a receipt ↗️ (Try the Ledger)",
            due_date=now,
            status=TaskStatus.TODO,
            color_theme=ColorTheme.SAGE,
            priority=2,
            emoji="🧾",
            rank=4000.0,
        ),
    ]


class TaskFlow:
    """
    Orchestrates every change to a user's tasks.

    Lanes:
    - stream: todo and done tasks, the day's list
    - parking_lot: parked "someday" tasks
    - archive: archived tasks

    Every operation takes the owner id and checks the task belongs to them.
    """

    def __init__(
        self,
        storage: Optional[TaskStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        ranking_settings: Optional[RankingSettings] = None,
        app_settings: Optional[AppSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        settings = get_settings()
        self._storage = storage or InMemoryTaskStorage()
        self._audit_logger = audit_logger or AuditLogger()  # Local-only logging
        self._ranking = ranking_settings or settings.ranking
        self._app = app_settings or settings.app
        self._rng = rng or random.Random()

    @property
    def storage(self) -> TaskStorageInterface:
        return self._storage

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_owned(self, owner_id: str, task_id: UUID) -> Task:
        task = await self._storage.get_task(task_id)
        if task is None or task.owner_id != owner_id:
            raise TaskNotFoundError(task_id, owner_id)
        return task

    async def _ensure_unchanged(self, task: Task) -> None:
        """Raise ConflictError if the stored task moved since we read it."""
        current = await self._storage.get_task(task.id)
        if current is None:
            raise NotFoundError(f"Task not found: {task.id}")
        if current.rank != task.rank or current.status != task.status:
            raise ConflictError(
                f"Task {task.id} changed while it was being moved"
            )

    async def _log_failure(
        self,
        operation: str,
        error: Exception,
        owner_id: str,
        correlation_id: UUID,
        task_id: Optional[UUID] = None,
    ) -> None:
        await self._audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={
                "operation": operation,
                "owner_id": owner_id,
                "task_id": str(task_id) if task_id else None,
            },
            correlation_id=correlation_id,
        )

    async def _with_conflict_retry(
        self,
        owner_id: str,
        task_id: Optional[UUID],
        correlation_id: UUID,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run `operation`, re-running it from scratch after a ConflictError.

        Each attempt re-reads everything it needs, so a retry plans against
        the current lane. The last ConflictError is re-raised.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._app.reorder_max_attempts),
            retry=retry_if_exception_type(ConflictError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    return await operation()
                except ConflictError as e:
                    await self._audit_logger.log_storage_conflict(
                        owner_id=owner_id,
                        task_id=task_id,
                        attempt=attempt.retry_state.attempt_number,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                    raise

    async def _apply_compaction(
        self,
        owner_id: str,
        lane: TaskLane,
        lane_tasks: list[Task],
        plan: RankPlan,
        correlation_id: UUID,
    ) -> None:
        """Persist the renumbered ranks a plan carries, if any, as one batch."""
        if not plan.updates:
            return

        await self._storage.update_ranks(
            plan.updates,
            expected_ranks={task.id: task.rank for task in lane_tasks},
        )

        await self._audit_logger.log_lane_compacted(
            owner_id=owner_id,
            lane=lane.value,
            item_count=len(plan.updates),
            correlation_id=correlation_id,
        )

    def _plan(self, lane_tasks: list[Task], moving_id: UUID, target: MoveTarget) -> RankPlan:
        return plan_move(
            lane_tasks,
            moving_id,
            target,
            gap=self._ranking.gap,
            epsilon=self._ranking.epsilon,
        )

    # =========================================================================
    # CREATE
    # =========================================================================

    async def add_task(
        self,
        owner_id: str,
        text: str,
        due_date: Optional[datetime] = None,
        priority: Optional[int] = None,
        selected_day: Optional[date] = None,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Task:
        """
        Create a task from typed input at the head of the stream.

        Due date precedence: explicit `due_date`, then a date found in the
        text, then the day currently selected in the UI.
        """
        correlation_id = correlation_id or create_correlation_id()
        now = now or utc_now()
        task_id = uuid4()
        color_theme = self._rng.choice(NEW_TASK_COLORS)

        async def attempt() -> Task:
            stream = await self._storage.list_tasks(owner_id, lane=TaskLane.STREAM)
            plan = self._plan(stream, task_id, ListEdge.START)
            await self._apply_compaction(owner_id, TaskLane.STREAM, stream, plan, correlation_id)

            task = Task(
                id=task_id,
                owner_id=owner_id,
                title=parsed.title,
                due_date=due_date,
                priority=priority if priority is not None else self._app.default_priority,
                emoji=suggest_emoji(parsed.title),
                color_theme=color_theme,
                status=TaskStatus.TODO,
                rank=plan.rank,
            )
            await self._storage.save_task(task)
            return task

        try:
            parsed = parse_smart_input(text, now=now)
            if due_date is None:
                due_date = parsed.due_date
            if due_date is None and selected_day is not None:
                due_date = _start_of_day(selected_day)

            task = await self._with_conflict_retry(owner_id, task_id, correlation_id, attempt)
        except Exception as e:
            await self._log_failure("add_task", e, owner_id, correlation_id)
            raise

        await self._audit_logger.log_task_created(
            owner_id=owner_id,
            task_id=task.id,
            title=task.title,
            rank=task.rank,
            correlation_id=correlation_id,
        )
        return task

    async def seed_onboarding(
        self,
        owner_id: str,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Task]:
        """
        Give a user with no tasks at all the example tasks.

        Returns the tasks created (empty if the user already had tasks or
        seeding is switched off).
        """
        if not self._app.seed_onboarding_tasks:
            return []

        correlation_id = correlation_id or create_correlation_id()
        try:
            if await self._storage.list_tasks(owner_id):
                return []

            tasks = _onboarding_tasks(owner_id, now or utc_now())
            for task in tasks:
                await self._storage.save_task(task)
        except Exception as e:
            await self._log_failure("seed_onboarding", e, owner_id, correlation_id)
            raise

        await self._audit_logger.log_onboarding_seeded(
            owner_id=owner_id,
            task_count=len(tasks),
            correlation_id=correlation_id,
        )
        return tasks

    # =========================================================================
    # ORDERING
    # =========================================================================

    async def reorder(
        self,
        owner_id: str,
        moving_id: UUID,
        target: MoveTarget,
        correlation_id: Optional[UUID] = None,
    ) -> Task:
        """
        Drop `moving_id` onto `target` (a task id or a ListEdge).

        The target's lane decides the destination: dropping onto a task in
        another lane is a lane change. Returns the moved task.
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            return await self._with_conflict_retry(
                owner_id,
                moving_id,
                correlation_id,
                lambda: self._reorder_once(owner_id, moving_id, target, correlation_id),
            )
        except Exception as e:
            await self._log_failure("reorder", e, owner_id, correlation_id, moving_id)
            raise

    async def _reorder_once(
        self,
        owner_id: str,
        moving_id: UUID,
        target: MoveTarget,
        correlation_id: UUID,
    ) -> Task:
        mover = await self._get_owned(owner_id, moving_id)

        if isinstance(target, ListEdge):
            lane = mover.lane
        else:
            lane = (await self._get_owned(owner_id, target)).lane

        if lane != mover.lane:
            return await self._move_once(owner_id, mover, lane, target, None, correlation_id)

        lane_tasks = await self._storage.list_tasks(owner_id, lane=lane)
        current = next((t for t in lane_tasks if t.id == mover.id), mover)
        plan = self._plan(lane_tasks, mover.id, target)
        if plan.rank == current.rank and not plan.updates:
            return current

        await self._apply_compaction(owner_id, lane, lane_tasks, plan, correlation_id)
        moved = await self._storage.update_rank(
            mover.id,
            plan.rank,
            expected_rank=current.rank,
        )

        await self._audit_logger.log_task_reordered(
            owner_id=owner_id,
            task_id=mover.id,
            old_rank=current.rank,
            new_rank=plan.rank,
            correlation_id=correlation_id,
        )
        return moved

    async def compact_lane(
        self,
        owner_id: str,
        lane: TaskLane,
        correlation_id: Optional[UUID] = None,
    ) -> list[Task]:
        """Renumber a whole lane to evenly spaced ranks, keeping its order."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            return await self._with_conflict_retry(
                owner_id,
                None,
                correlation_id,
                lambda: self._compact_once(owner_id, lane, correlation_id),
            )
        except Exception as e:
            await self._log_failure("compact_lane", e, owner_id, correlation_id)
            raise

    async def _compact_once(
        self,
        owner_id: str,
        lane: TaskLane,
        correlation_id: UUID,
    ) -> list[Task]:
        lane_tasks = await self._storage.list_tasks(owner_id, lane=lane)
        expected = {task.id: task.rank for task in lane_tasks}
        changed = [
            update for update in compact(lane_tasks, gap=self._ranking.gap)
            if update.rank != expected[update.item_id]
        ]
        if not changed:
            return lane_tasks

        await self._storage.update_ranks(changed, expected_ranks=expected)

        await self._audit_logger.log_lane_compacted(
            owner_id=owner_id,
            lane=lane.value,
            item_count=len(changed),
            correlation_id=correlation_id,
        )
        return await self._storage.list_tasks(owner_id, lane=lane)

    # =========================================================================
    # LANE CHANGES
    # =========================================================================

    async def move_to_lane(
        self,
        owner_id: str,
        task_id: UUID,
        lane: TaskLane,
        target: MoveTarget = ListEdge.END,
        due_date: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Task:
        """
        Move a task into another lane at `target`.

        Parking clears the due date. Moving into the stream fills a missing
        due date from `due_date`. Moving a task into the lane it is already
        in changes nothing.
        """
        task, _ = await self._move_to_lane(
            owner_id,
            task_id,
            lane,
            target,
            due_date,
            correlation_id or create_correlation_id(),
        )
        return task

    async def _move_to_lane(
        self,
        owner_id: str,
        task_id: UUID,
        lane: TaskLane,
        target: MoveTarget,
        due_date: Optional[datetime],
        correlation_id: UUID,
    ) -> tuple[Task, bool]:
        """Returns the task and whether it actually changed lanes."""

        async def attempt() -> tuple[Task, bool]:
            task = await self._get_owned(owner_id, task_id)
            if task.lane == lane:
                return task, False
            moved = await self._move_once(owner_id, task, lane, target, due_date, correlation_id)
            return moved, True

        try:
            return await self._with_conflict_retry(owner_id, task_id, correlation_id, attempt)
        except Exception as e:
            await self._log_failure("move_to_lane", e, owner_id, correlation_id, task_id)
            raise

    async def _move_once(
        self,
        owner_id: str,
        task: Task,
        lane: TaskLane,
        target: MoveTarget,
        due_date: Optional[datetime],
        correlation_id: UUID,
    ) -> Task:
        from_lane = task.lane
        lane_tasks = await self._storage.list_tasks(owner_id, lane=lane)
        plan = self._plan(lane_tasks, task.id, target)

        await self._apply_compaction(owner_id, lane, lane_tasks, plan, correlation_id)
        await self._ensure_unchanged(task)

        task.status = lane.entry_status
        task.rank = plan.rank
        if lane == TaskLane.PARKING_LOT:
            task.due_date = None
        elif lane == TaskLane.STREAM and task.due_date is None:
            task.due_date = due_date
        await self._storage.update_task(task)

        await self._audit_logger.log_task_moved(
            owner_id=owner_id,
            task_id=task.id,
            from_lane=from_lane.value,
            to_lane=lane.value,
            new_rank=plan.rank,
            correlation_id=correlation_id,
        )
        return task

    async def archive(
        self,
        owner_id: str,
        task_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Task:
        """Move a task to the end of the archive. Archiving an archived task does nothing."""
        correlation_id = correlation_id or create_correlation_id()
        task, moved = await self._move_to_lane(
            owner_id,
            task_id,
            TaskLane.ARCHIVE,
            ListEdge.END,
            None,
            correlation_id,
        )
        if moved:
            await self._audit_logger.log_task_archived(
                owner_id=owner_id,
                task_id=task_id,
                correlation_id=correlation_id,
            )
        return task

    async def set_done(
        self,
        owner_id: str,
        task_id: UUID,
        done: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Task:
        """
        Mark a task done (or not done).

        Within the stream only the status changes, the rank is kept. A task
        completed from the parking lot or the archive joins the end of the
        stream.
        """
        correlation_id = correlation_id or create_correlation_id()
        new_status = TaskStatus.DONE if done else TaskStatus.TODO

        async def attempt() -> Task:
            task = await self._get_owned(owner_id, task_id)
            if task.status == new_status:
                return task

            from_lane = task.lane
            if from_lane != TaskLane.STREAM:
                stream = await self._storage.list_tasks(owner_id, lane=TaskLane.STREAM)
                await self._ensure_unchanged(task)
                task.rank = rank_for_tail(stream, gap=self._ranking.gap)

            task.status = new_status
            await self._storage.update_task(task)

            if from_lane != TaskLane.STREAM:
                await self._audit_logger.log_task_moved(
                    owner_id=owner_id,
                    task_id=task.id,
                    from_lane=from_lane.value,
                    to_lane=TaskLane.STREAM.value,
                    new_rank=task.rank,
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log_completion_toggled(
                owner_id=owner_id,
                task_id=task.id,
                done=done,
                correlation_id=correlation_id,
            )
            return task

        try:
            return await self._with_conflict_retry(owner_id, task_id, correlation_id, attempt)
        except Exception as e:
            await self._log_failure("set_done", e, owner_id, correlation_id, task_id)
            raise

    # =========================================================================
    # EDITS
    # =========================================================================

    async def update_task(
        self,
        owner_id: str,
        task_id: UUID,
        correlation_id: Optional[UUID] = None,
        **changes,
    ) -> Task:
        """
        Edit a task's content (title, description, priority, due date,
        color, emoji). Values are validated like a new task's.
        """
        correlation_id = correlation_id or create_correlation_id()
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidChangeError(
                f"Cannot update {', '.join(sorted(unknown))} with update_task()"
            )

        try:
            task = await self._get_owned(owner_id, task_id)
            updated = Task.model_validate({**task.model_dump(), **changes})
            await self._storage.update_task(updated)
        except Exception as e:
            await self._log_failure("update_task", e, owner_id, correlation_id, task_id)
            raise

        await self._audit_logger.log_task_updated(
            owner_id=owner_id,
            task_id=task_id,
            fields=sorted(changes),
            correlation_id=correlation_id,
        )
        return updated

    async def delete_task(
        self,
        owner_id: str,
        task_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        correlation_id = correlation_id or create_correlation_id()
        try:
            await self._get_owned(owner_id, task_id)
            deleted = await self._storage.delete_task(task_id)
        except Exception as e:
            await self._log_failure("delete_task", e, owner_id, correlation_id, task_id)
            raise

        if deleted:
            await self._audit_logger.log_task_deleted(
                owner_id=owner_id,
                task_id=task_id,
                correlation_id=correlation_id,
            )
        return deleted

    # =========================================================================
    # DAILY VIEWS
    # =========================================================================

    async def wrap_day(
        self,
        owner_id: str,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Task]:
        """
        End-of-day ritual: every done task goes back to todo, due tomorrow.

        Ranks are not touched. Returns the tasks that were rolled over.
        """
        correlation_id = correlation_id or create_correlation_id()
        tomorrow = (now or utc_now()) + timedelta(days=1)

        try:
            done = await self._storage.list_tasks(owner_id, status=TaskStatus.DONE)
            for task in done:
                task.status = TaskStatus.TODO
                task.due_date = tomorrow
                await self._storage.update_task(task)
        except Exception as e:
            await self._log_failure("wrap_day", e, owner_id, correlation_id)
            raise

        await self._audit_logger.log_day_wrapped(
            owner_id=owner_id,
            task_count=len(done),
            correlation_id=correlation_id,
        )
        return done

    async def day_view(self, owner_id: str, day: date) -> DayView:
        """Stream tasks due on `day`, plus the whole parking lot."""
        stream = await self._storage.list_tasks(owner_id, lane=TaskLane.STREAM)
        parked = await self._storage.list_tasks(owner_id, lane=TaskLane.PARKING_LOT)
        return DayView(
            day=day,
            stream=[task for task in stream if task.is_due_on(day)],
            parking_lot=parked,
        )


class TaskListCache:
    """
    Read-through cache of lanes, dropped whenever storage reports a change.

    The first read for an owner subscribes to that owner's changes; any
    write then invalidates all of the owner's cached lanes so the next read
    re-fetches the authoritative order.
    """

    def __init__(self, storage: TaskStorageInterface):
        self._storage = storage
        self._lanes: dict[tuple[str, TaskLane], list[Task]] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._generations: dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    async def get_lane(self, owner_id: str, lane: TaskLane) -> list[Task]:
        key = (owner_id, lane)
        if key in self._lanes:
            self.hits += 1
            return [task.model_copy(deep=True) for task in self._lanes[key]]

        self.misses += 1
        if owner_id not in self._subscriptions:
            self._subscriptions[owner_id] = self._storage.subscribe(owner_id, self._on_change)

        generation = self._generations.get(owner_id, 0)
        tasks = await self._storage.list_tasks(owner_id, lane=lane)
        # A write landed while we were fetching; don't cache what may be stale
        if self._generations.get(owner_id, 0) == generation:
            self._lanes[key] = tasks
        return [task.model_copy(deep=True) for task in tasks]

    def _on_change(self, change: TaskChange) -> None:
        self.invalidate(change.owner_id)

    def invalidate(self, owner_id: str) -> None:
        self._generations[owner_id] = self._generations.get(owner_id, 0) + 1
        for key in [key for key in self._lanes if key[0] == owner_id]:
            del self._lanes[key]

    def is_cached(self, owner_id: str, lane: TaskLane) -> bool:
        return (owner_id, lane) in self._lanes

    def close(self) -> None:
        """Unsubscribe from storage and drop everything."""
        for subscription in self._subscriptions.values():
            subscription.unsubscribe()
        self._subscriptions.clear()
        self._lanes.clear()


def create_app_components(
    storage_backend: Optional[str] = None,
) -> tuple[TaskFlow, TaskListCache, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "memory" or "google_sheets". Defaults to the
                         configured WILLOW_STORAGE_BACKEND.

    Returns:
        (task_flow, task_cache, sheets_client)
    """
    backend = storage_backend or get_settings().app.storage_backend
    sheets_client = None
    task_storage = None
    audit_storage = None

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            task_storage = GoogleSheetsTaskStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            structlog.get_logger().warning(
                "storage_not_configured",
                backend=backend,
                error=str(e),
            )
            sheets_client = None
            task_storage = None
            audit_storage = None

    if task_storage is None:
        task_storage = InMemoryTaskStorage()
        audit_storage = InMemoryAuditStorage()

    task_flow = TaskFlow(
        storage=task_storage,
        audit_logger=AuditLogger(audit_storage),
    )
    task_cache = TaskListCache(task_storage)

    return task_flow, task_cache, sheets_client
