"""
Core Data Models for Willow

These models define the schemas for tasks and for the results of rank
arithmetic. They are designed to:
1. Enforce a closed set of statuses and lanes
2. Reject non-finite ranks at the boundary
3. Be serializable for storage and logging

DESIGN DECISION: A task's status decides which lane (logical list) it is
ordered in. Ranks are only comparable between tasks of the same lane.
"""

from collections.abc import Hashable
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TaskLane(str, Enum):
    """
    Logical lists a task can be ordered in.

    Each lane is ranked independently.
    """
    STREAM = "stream"            # Today's flow (todo + done)
    PARKING_LOT = "parking_lot"  # Someday list
    ARCHIVE = "archive"

    @property
    def entry_status(self) -> "TaskStatus":
        """Status a task takes when it is dropped into this lane."""
        return _LANE_ENTRY_STATUS[self]


class TaskStatus(str, Enum):
    """
    Task status.

    Values match what the client has always persisted.
    """
    TODO = "todo"
    DONE = "done"
    PARKED = "parked"
    ARCHIVED = "archived"

    @property
    def lane(self) -> TaskLane:
        return _STATUS_LANE[self]


_STATUS_LANE = {
    TaskStatus.TODO: TaskLane.STREAM,
    TaskStatus.DONE: TaskLane.STREAM,
    TaskStatus.PARKED: TaskLane.PARKING_LOT,
    TaskStatus.ARCHIVED: TaskLane.ARCHIVE,
}

_LANE_ENTRY_STATUS = {
    TaskLane.STREAM: TaskStatus.TODO,
    TaskLane.PARKING_LOT: TaskStatus.PARKED,
    TaskLane.ARCHIVE: TaskStatus.ARCHIVED,
}


class ColorTheme(str, Enum):
    """Card palette."""
    OAT = "oat"
    MATCHA = "matcha"
    CLAY = "clay"
    LAVENDER = "lavender"
    SAGE = "sage"


class ListEdge(str, Enum):
    """
    Sentinel targets for a move.

    Used in place of a target item id to mean "first slot" or "last slot".
    """
    START = "start"
    END = "end"


# =============================================================================
# CORE TASK MODEL
# =============================================================================

class Task(BaseModel):
    """
    A single task.

    `rank` carries no meaning beyond ordering within the task's lane.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique task ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="ID of the user who owns the task"
    )

    # Content
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short task title"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=2000,
    )
    emoji: Optional[str] = Field(
        default=None,
        max_length=16,
    )
    color_theme: ColorTheme = ColorTheme.OAT

    # Scheduling
    due_date: Optional[datetime] = Field(
        default=None,
        description="When the task is due; parked tasks usually have none"
    )
    priority: int = Field(
        default=4,
        ge=1,
        le=4,
        description="1 is most important, 4 is the default"
    )

    # Ordering
    status: TaskStatus = TaskStatus.TODO
    rank: float = Field(
        ...,
        allow_inf_nan=False,
        description="Sort key within the task's lane"
    )

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def lane(self) -> TaskLane:
        return self.status.lane

    def is_due_on(self, day: date) -> bool:
        """True if the task has a due date falling on `day`."""
        return self.due_date is not None and self.due_date.date() == day


# =============================================================================
# RANKING MODELS
# =============================================================================

class RankUpdate(BaseModel):
    """A new rank for one item."""

    item_id: Hashable
    rank: float = Field(allow_inf_nan=False)


class RankPlan(BaseModel):
    """
    Result of planning a move.

    `updates` is empty unless the lane had to be compacted, in which case it
    holds the new ranks of every other item whose rank changed. The caller
    persists `rank` for the moving item plus all `updates`.
    """

    item_id: Hashable
    rank: float = Field(allow_inf_nan=False)
    compacted: bool = False
    updates: list[RankUpdate] = Field(default_factory=list)

    @property
    def is_single_write(self) -> bool:
        return not self.updates


# =============================================================================
# CHANGE NOTIFICATION / VIEW MODELS
# =============================================================================

class TaskChange(BaseModel):
    """Emitted by storage to subscribers after every write."""

    owner_id: str
    task_id: UUID
    change_type: str = Field(
        ...,
        pattern="^(created|updated|deleted)$",
    )
    occurred_at: datetime = Field(default_factory=utc_now)


class DayView(BaseModel):
    """What the stream screen shows for one day."""

    day: date
    stream: list[Task] = Field(default_factory=list)
    parking_lot: list[Task] = Field(default_factory=list)
