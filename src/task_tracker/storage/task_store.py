"""Persistent store for tasks and their change history."""

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from task_tracker.api.models import (
    HistoryAction,
    Task,
    TaskFilters,
    TaskHistoryEntry,
    TaskStatus,
)
from task_tracker.classification.classifier import Category, ExtractedEntities, Priority
from task_tracker.errors import StoreError, TaskNotFoundError

logger = logging.getLogger(__name__)

# Columns a caller may write; id and created_at belong to the store
TASK_COLUMNS = (
    "title",
    "description",
    "assigned_to",
    "due_date",
    "category",
    "priority",
    "suggested_actions",
    "extracted_entities",
    "status",
)


class TaskStoreSession(Protocol):
    """Operations on the tasks and task_history collections within one transaction."""

    def insert_task(self, record: dict[str, Any]) -> Task:
        """Insert a task and return it with its generated id and created_at."""
        ...

    def get_task(self, task_id: int) -> Task | None:
        """Return a task by id, or None."""
        ...

    def select_tasks(
        self, filters: TaskFilters, limit: int, offset: int
    ) -> tuple[list[Task], int]:
        """Return one page of matching tasks (newest first) and the total match count."""
        ...

    def update_task(self, task_id: int, patch: dict[str, Any]) -> Task:
        """Apply a partial update and return the updated task."""
        ...

    def delete_task(self, task_id: int) -> None:
        """Delete a task."""
        ...

    def insert_history(
        self,
        task_id: int,
        action: HistoryAction,
        old_value: dict[str, Any] | None,
        new_value: dict[str, Any] | None,
    ) -> TaskHistoryEntry:
        """Append a history entry."""
        ...

    def list_history(self, task_id: int) -> list[TaskHistoryEntry]:
        """Return all history entries for a task, newest first."""
        ...


class TaskStore(Protocol):
    """Protocol for task persistence."""

    def transaction(self, write: bool = True) -> AbstractContextManager[TaskStoreSession]:
        """Open a unit of work that commits on success and rolls back on error.

        Read-only units pass write=False so they do not wait for the write lock.
        """
        ...


class SqliteTaskStore:
    """SQLite task store.

    Each transaction opens its own connection. Write transactions take the
    write lock up front (BEGIN IMMEDIATE), so read-modify-write sequences
    inside one transaction are serialized against other writers.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        """Initialize store and create the schema if missing."""
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info(f"[TaskStore] Ready (db={self._db_path})")

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are managed explicitly
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        # SQLite lower() and LIKE only fold ASCII
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        categories = _sql_values(Category)
        priorities = _sql_values(Priority)
        statuses = _sql_values(TaskStatus)
        actions = _sql_values(HistoryAction)

        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        try:
            conn.executescript(
                f"""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    assigned_to TEXT,
                    due_date TEXT,
                    category TEXT NOT NULL CHECK (category IN ({categories})),
                    priority TEXT NOT NULL CHECK (priority IN ({priorities})),
                    suggested_actions TEXT NOT NULL DEFAULT '[]',
                    extracted_entities TEXT NOT NULL DEFAULT '{{}}',
                    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ({statuses})),
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(created_at);

                CREATE TABLE IF NOT EXISTS task_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    action TEXT NOT NULL CHECK (action IN ({actions})),
                    old_value TEXT,
                    new_value TEXT,
                    changed_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_task_history_task ON task_history(task_id);
                """
            )
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator["SqliteTaskStoreSession"]:
        """Open a unit of work that commits on success and rolls back on error.

        Args:
            write: Take the write lock up front (BEGIN IMMEDIATE). Reads use a
                deferred BEGIN and see one consistent snapshot.

        Raises:
            StoreError: If SQLite rejects any statement in the unit of work
        """
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield SqliteTaskStoreSession(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error(f"[TaskStore] Transaction failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            conn.close()


class SqliteTaskStoreSession:
    """Task and history operations bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize session with an open connection."""
        self._conn = conn

    def insert_task(self, record: dict[str, Any]) -> Task:
        values = _encode_task_fields(record)
        values["created_at"] = _now()
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        cur = self._conn.execute(
            f"INSERT INTO tasks ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        task_id = cur.lastrowid
        if task_id is None:
            raise StoreError("SQLite did not return lastrowid for tasks insert")
        task = self.get_task(task_id)
        if task is None:
            raise StoreError(f"Inserted task {task_id} could not be read back")
        return task

    def get_task(self, task_id: int) -> Task | None:
        row = self._conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None

    def select_tasks(
        self, filters: TaskFilters, limit: int, offset: int
    ) -> tuple[list[Task], int]:
        clauses: list[str] = []
        params: list[Any] = []

        for column, value in (
            ("status", filters.status),
            ("category", filters.category),
            ("priority", filters.priority),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value.value)

        if filters.search:
            clauses.append("casefold(title) LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(filters.search.casefold())}%")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        (total,) = self._conn.execute(f"SELECT COUNT(*) FROM tasks {where}", params).fetchone()
        rows = self._conn.execute(
            f"SELECT * FROM tasks {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ).fetchall()
        return [_row_to_task(r) for r in rows], int(total)

    def update_task(self, task_id: int, patch: dict[str, Any]) -> Task:
        values = _encode_task_fields(patch)
        if values:
            assignments = ", ".join(f"{column} = ?" for column in values)
            cur = self._conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*values.values(), task_id),
            )
            if cur.rowcount == 0:
                raise TaskNotFoundError(task_id)
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def delete_task(self, task_id: int) -> None:
        cur = self._conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        if cur.rowcount == 0:
            raise TaskNotFoundError(task_id)

    def insert_history(
        self,
        task_id: int,
        action: HistoryAction,
        old_value: dict[str, Any] | None,
        new_value: dict[str, Any] | None,
    ) -> TaskHistoryEntry:
        changed_at = _now()
        cur = self._conn.execute(
            """
            INSERT INTO task_history (task_id, action, old_value, new_value, changed_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (task_id, action.value, _dump_json(old_value), _dump_json(new_value), changed_at),
        )
        entry_id = cur.lastrowid
        if entry_id is None:
            raise StoreError("SQLite did not return lastrowid for task_history insert")
        logger.debug(f"[TaskStore] History {action.value} recorded for task {task_id}")
        return TaskHistoryEntry(
            id=entry_id,
            task_id=task_id,
            action=action,
            old_value=old_value,
            new_value=new_value,
            changed_at=datetime.fromisoformat(changed_at),
        )

    def list_history(self, task_id: int) -> list[TaskHistoryEntry]:
        rows = self._conn.execute(
            "SELECT * FROM task_history WHERE task_id = ? ORDER BY changed_at DESC, id DESC",
            (task_id,),
        ).fetchall()
        return [_row_to_history(r) for r in rows]


def _now() -> str:
    # Fixed-width so timestamps sort lexically
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _sql_values(enum_type: type[Enum]) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_type)


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _load_json(value: str | None) -> Any:
    if value is None:
        return None
    return json.loads(value)


def _encode_task_fields(record: dict[str, Any]) -> dict[str, Any]:
    """Map task fields to column values, dropping anything that is not a task column."""
    values: dict[str, Any] = {}
    for column in TASK_COLUMNS:
        if column not in record:
            continue
        value = record[column]
        if isinstance(value, Enum):
            value = value.value
        elif column == "suggested_actions":
            value = json.dumps(list(value), ensure_ascii=False)
        elif column == "extracted_entities":
            if isinstance(value, ExtractedEntities):
                value = {"dates": value.dates, "people": value.people}
            value = json.dumps(value, ensure_ascii=False)
        values[column] = value
    return values


def _row_to_task(row: sqlite3.Row) -> Task:
    entities = json.loads(row["extracted_entities"] or "{}")
    return Task(
        id=int(row["id"]),
        title=row["title"],
        description=row["description"],
        assigned_to=row["assigned_to"],
        due_date=row["due_date"],
        category=Category(row["category"]),
        priority=Priority(row["priority"]),
        suggested_actions=json.loads(row["suggested_actions"] or "[]"),
        extracted_entities=ExtractedEntities(
            dates=list(entities.get("dates", [])),
            people=list(entities.get("people", [])),
        ),
        status=TaskStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_history(row: sqlite3.Row) -> TaskHistoryEntry:
    return TaskHistoryEntry(
        id=int(row["id"]),
        task_id=int(row["task_id"]),
        action=HistoryAction(row["action"]),
        old_value=_load_json(row["old_value"]),
        new_value=_load_json(row["new_value"]),
        changed_at=datetime.fromisoformat(row["changed_at"]),
    )
