"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is a storage backend because:
1. Users can look at their task list directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: the guarded rank update re-reads the row right before
  writing, which narrows but does not close the race window. Batched rank
  writes are checked in full first and then sent as one batch_update.
- Limited query capabilities (we filter and sort in Python)
- Change notifications only cover writes made through this process
"""

import json
import math
from collections.abc import Sequence
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from willow.config import get_settings
from willow.models.audit import AuditEvent, AuditEventType, AuditSeverity
from willow.models.task import ColorTheme, RankUpdate, Task, TaskChange, TaskLane, TaskStatus, utc_now
from willow.ranking import sort_by_rank
from willow.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    ChangeFeed,
    ConflictError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    Subscription,
    TaskStorageInterface,
)


# Column mappings for Tasks sheet
TASK_COLUMNS = [
    "id",
    "owner_id",
    "title",
    "description",
    "emoji",
    "color_theme",
    "due_date",
    "priority",
    "status",
    "position_rank",
    "created_at",
    "updated_at",
]

RANK_COLUMN = TASK_COLUMNS.index("position_rank") + 1

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Conflicts and missing rows are answers, not transient failures
_write_retry = retry(
    retry=retry_if_not_exception_type((ConflictError, NotFoundError, DuplicateError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_tasks_sheet(self) -> gspread.Worksheet:
        """Get or create the Tasks worksheet."""
        return self._get_or_create_sheet(
            self._settings.tasks_sheet_name, TASK_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _safe_getter(row: list):
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def task_to_row(task: Task) -> list:
    """Convert a Task to a spreadsheet row."""
    return [
        str(task.id),
        task.owner_id,
        task.title,
        task.description or "",
        task.emoji or "",
        task.color_theme.value,
        task.due_date.isoformat() if task.due_date else "",
        str(task.priority),
        task.status.value,
        repr(task.rank),
        task.created_at.isoformat(),
        task.updated_at.isoformat(),
    ]


def row_to_task(row: list) -> Task:
    """Convert a spreadsheet row to a Task."""
    safe_get = _safe_getter(row)
    return Task(
        id=UUID(safe_get(0)),
        owner_id=safe_get(1),
        title=safe_get(2),
        description=safe_get(3) or None,
        emoji=safe_get(4) or None,
        color_theme=ColorTheme(safe_get(5, ColorTheme.OAT.value)),
        due_date=datetime.fromisoformat(safe_get(6)) if safe_get(6) else None,
        priority=int(safe_get(7, "4")),
        status=TaskStatus(safe_get(8, TaskStatus.TODO.value)),
        rank=float(safe_get(9)),
        created_at=datetime.fromisoformat(safe_get(10)),
        updated_at=datetime.fromisoformat(safe_get(11)),
    )


class GoogleSheetsTaskStorage(TaskStorageInterface):
    """
    Google Sheets implementation of task storage.

    One task per row. Rows are looked up by id on every call.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._feed = ChangeFeed()

    def _find_row(self, sheet: gspread.Worksheet, task_id: UUID) -> tuple[Optional[int], Optional[list]]:
        """Return (1-based sheet row index, row values) for a task id."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row and row[0] == str(task_id):
                return idx, row
        return None, None

    def _announce(self, owner_id: str, task_id: UUID, change_type: str) -> None:
        self._feed._notify(TaskChange(
            owner_id=owner_id,
            task_id=task_id,
            change_type=change_type,
        ))

    @_write_retry
    async def save_task(self, task: Task) -> bool:
        """Append a new task row."""
        try:
            sheet = self._client.get_tasks_sheet()
            idx, _ = self._find_row(sheet, task.id)
            if idx is not None:
                raise DuplicateError(f"Task already exists: {task.id}")
            sheet.append_row(task_to_row(task), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save task: {e}")
        self._announce(task.owner_id, task.id, "created")
        return True

    async def get_task(self, task_id: UUID) -> Optional[Task]:
        """Retrieve a task by its ID."""
        try:
            sheet = self._client.get_tasks_sheet()
            _, row = self._find_row(sheet, task_id)
            return row_to_task(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get task: {e}")

    @_write_retry
    async def update_task(self, task: Task) -> bool:
        """Rewrite an existing task row."""
        try:
            sheet = self._client.get_tasks_sheet()
            idx, _ = self._find_row(sheet, task.id)
            if idx is None:
                raise NotFoundError(f"Task not found: {task.id}")

            task.updated_at = utc_now()
            sheet.update(
                range_name=f"A{idx}",
                values=[task_to_row(task)],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update task: {e}")
        self._announce(task.owner_id, task.id, "updated")
        return True

    async def update_rank(
        self,
        task_id: UUID,
        rank: float,
        expected_rank: Optional[float] = None,
    ) -> Task:
        """Update the rank cell of one row, guarded by the expected rank."""
        if not math.isfinite(rank):
            raise StorageError(f"Refusing non-finite rank for task {task_id}: {rank}")
        return await self._write_rank(task_id, rank, expected_rank)

    @_write_retry
    async def _write_rank(
        self,
        task_id: UUID,
        rank: float,
        expected_rank: Optional[float],
    ) -> Task:
        try:
            sheet = self._client.get_tasks_sheet()
            idx, row = self._find_row(sheet, task_id)
            if idx is None:
                raise NotFoundError(f"Task not found: {task_id}")

            task = row_to_task(row)
            if expected_rank is not None and task.rank != expected_rank:
                raise ConflictError(
                    f"Rank of task {task_id} changed: expected {expected_rank}, "
                    f"found {task.rank}"
                )

            task.rank = rank
            task.updated_at = utc_now()
            # position_rank through updated_at in one RAW write
            sheet.update(
                range_name=rowcol_to_a1(idx, RANK_COLUMN),
                values=[task_to_row(task)[RANK_COLUMN - 1:]],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update rank: {e}")
        self._announce(task.owner_id, task_id, "updated")
        return task

    @_write_retry
    async def update_ranks(
        self,
        updates: Sequence[RankUpdate],
        expected_ranks: Optional[dict[UUID, float]] = None,
    ) -> list[Task]:
        """Check every row against its expected rank, then write all of them in one batch."""
        expected_ranks = expected_ranks or {}
        try:
            sheet = self._client.get_tasks_sheet()
            rows = {
                row[0]: (idx, row)
                for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
                if row and row[0]
            }

            now = utc_now()
            data = []
            written = []
            for update in updates:
                idx, row = rows.get(str(update.item_id), (None, None))
                if idx is None:
                    raise NotFoundError(f"Task not found: {update.item_id}")

                task = row_to_task(row)
                expected = expected_ranks.get(update.item_id)
                if expected is not None and task.rank != expected:
                    raise ConflictError(
                        f"Rank of task {update.item_id} changed: expected {expected}, "
                        f"found {task.rank}"
                    )

                task.rank = update.rank
                task.updated_at = now
                data.append({
                    "range": rowcol_to_a1(idx, RANK_COLUMN),
                    "values": [task_to_row(task)[RANK_COLUMN - 1:]],
                })
                written.append(task)

            if data:
                sheet.batch_update(data, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update ranks: {e}")
        for task in written:
            self._announce(task.owner_id, task.id, "updated")
        return written

    async def delete_task(self, task_id: UUID) -> bool:
        """Delete a task row by ID."""
        try:
            sheet = self._client.get_tasks_sheet()
            idx, row = self._find_row(sheet, task_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete task: {e}")
        self._announce(row[1], task_id, "deleted")
        return True

    async def list_tasks(
        self,
        owner_id: str,
        lane: Optional[TaskLane] = None,
        status: Optional[TaskStatus] = None,
    ) -> list[Task]:
        """List an owner's tasks in rank order."""
        try:
            sheet = self._client.get_tasks_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            tasks = []
            for row in all_rows:
                if not row or not row[0] or len(row) < 2 or row[1] != owner_id:
                    continue

                try:
                    task = row_to_task(row)
                except Exception:
                    continue  # Skip malformed rows

                if lane and task.lane != lane:
                    continue
                if status and task.status != status:
                    continue

                tasks.append(task)

            return sort_by_rank(tasks)
        except Exception as e:
            raise StorageError(f"Failed to list tasks: {e}")

    def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        return self._feed.subscribe(owner_id, callback)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
