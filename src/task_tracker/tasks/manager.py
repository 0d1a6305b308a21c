"""Task lifecycle and audit trail."""

import logging
from typing import Any

from task_tracker.api.models import (
    HistoryAction,
    Pagination,
    Task,
    TaskFilters,
    TaskHistoryEntry,
    TaskPage,
    TaskStatus,
    TaskWithHistory,
)
from task_tracker.classification.classifier import (
    Category,
    ClassificationResult,
    Priority,
    classify,
)
from task_tracker.config import PaginationDefaults
from task_tracker.errors import TaskNotFoundError, TaskValidationError
from task_tracker.storage.task_store import TaskStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "assigned_to",
    "due_date",
    "category",
    "priority",
    "status",
)

# Fields that must always hold a value once a task exists
_REQUIRED_FIELDS = ("title", "description", "category", "priority", "status")

_ENUM_FIELDS: dict[str, type[Category | Priority | TaskStatus]] = {
    "category": Category,
    "priority": Priority,
    "status": TaskStatus,
}


class TaskManager:
    """Creates, lists, updates and deletes tasks, recording every mutation in history.

    Each operation runs in a single store transaction, so the snapshot read,
    the mutation and the history append commit or roll back together.
    """

    def __init__(
        self,
        store: TaskStore,
        pagination: PaginationDefaults | None = None,
        legacy_people_extraction: bool = False,
    ) -> None:
        """Initialize manager.

        Args:
            store: Task persistence
            pagination: Defaults applied when listing without limit/offset
            legacy_people_extraction: Passed through to the classifier
        """
        self._store = store
        self._pagination = pagination or PaginationDefaults()
        self._legacy_people_extraction = legacy_people_extraction

    def preview_classification(
        self, title: str | None, description: str | None
    ) -> ClassificationResult:
        """Classify text without persisting anything."""
        return classify(title, description, self._legacy_people_extraction)

    def create_task(
        self,
        title: str,
        description: str,
        assigned_to: str | None = None,
        due_date: str | None = None,
        override_category: Category | None = None,
        override_priority: Priority | None = None,
    ) -> Task:
        """Create a classified task and record a created history entry.

        Overrides replace the derived category/priority only; suggested
        actions and entities always come from the text.

        Raises:
            TaskValidationError: If title or description is blank
            StoreError: If the store rejects the insert
        """
        _require_text("title", title)
        _require_text("description", description)

        result = self.preview_classification(title, description)
        record: dict[str, Any] = {
            "title": title,
            "description": description,
            "assigned_to": assigned_to,
            "due_date": due_date,
            "category": override_category or result.category,
            "priority": override_priority or result.priority,
            "suggested_actions": result.suggested_actions,
            "extracted_entities": result.extracted_entities,
            "status": TaskStatus.PENDING,
        }

        with self._store.transaction() as tx:
            task = tx.insert_task(record)
            tx.insert_history(task.id, HistoryAction.CREATED, None, task.to_snapshot())

        logger.info(
            f"[TaskManager] Created task {task.id} "
            f"(category={task.category.value}, priority={task.priority.value})"
        )
        return task

    def list_tasks(
        self,
        filters: TaskFilters | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> TaskPage:
        """List tasks newest first, with the total match count.

        Raises:
            TaskValidationError: If limit or offset is out of range
        """
        page = self._resolve_pagination(limit, offset)
        with self._store.transaction(write=False) as tx:
            tasks, total = tx.select_tasks(filters or TaskFilters(), page.limit, page.offset)
        return TaskPage(items=tasks, total=total, limit=page.limit, offset=page.offset)

    def get_task_with_history(self, task_id: int) -> TaskWithHistory:
        """Get a task and its history, newest first.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        with self._store.transaction(write=False) as tx:
            task = tx.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            history = tx.list_history(task_id)
        return TaskWithHistory(task=task, history=history)

    def get_history(self, task_id: int) -> list[TaskHistoryEntry]:
        """Get the history of a task, including tasks that have been deleted.

        Raises:
            TaskNotFoundError: If there is neither a task nor any history for the id
        """
        with self._store.transaction(write=False) as tx:
            history = tx.list_history(task_id)
            if not history and tx.get_task(task_id) is None:
                raise TaskNotFoundError(task_id)
        return history

    def update_task(self, task_id: int, patch: dict[str, Any]) -> Task:
        """Apply a partial update and record it in history.

        The entry is status_changed when the patch carries a status, else updated.

        Raises:
            TaskValidationError: If the patch is empty or invalid
            TaskNotFoundError: If the task does not exist
            StoreError: If the store rejects the update
        """
        changes = _validate_patch(patch)
        action = HistoryAction.STATUS_CHANGED if "status" in changes else HistoryAction.UPDATED

        with self._store.transaction() as tx:
            before = tx.get_task(task_id)
            if before is None:
                raise TaskNotFoundError(task_id)
            after = tx.update_task(task_id, changes)
            tx.insert_history(task_id, action, before.to_snapshot(), after.to_snapshot())

        logger.info(f"[TaskManager] Updated task {task_id} ({action.value}: {sorted(changes)})")
        return after

    def delete_task(self, task_id: int) -> None:
        """Delete a task and record a deleted history entry.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        with self._store.transaction() as tx:
            before = tx.get_task(task_id)
            if before is None:
                raise TaskNotFoundError(task_id)
            tx.delete_task(task_id)
            tx.insert_history(task_id, HistoryAction.DELETED, before.to_snapshot(), None)

        logger.info(f"[TaskManager] Deleted task {task_id}")

    def _resolve_pagination(self, limit: int | None, offset: int | None) -> Pagination:
        defaults = self._pagination
        resolved = Pagination(
            limit=defaults.default_limit if limit is None else limit,
            offset=defaults.default_offset if offset is None else offset,
        )
        if not 1 <= resolved.limit <= defaults.max_limit:
            raise TaskValidationError(f"limit must be between 1 and {defaults.max_limit}")
        if resolved.offset < 0:
            raise TaskValidationError("offset must not be negative")
        return resolved


def _require_text(name: str, value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        raise TaskValidationError(f"{name} is required")


def _validate_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Check a patch against the updatable fields and coerce enum values."""
    if not patch:
        raise TaskValidationError("No fields to update")

    unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
    if unknown:
        raise TaskValidationError(f"Unknown fields: {', '.join(unknown)}")

    changes: dict[str, Any] = {}
    for name, value in patch.items():
        if name in _REQUIRED_FIELDS and value is None:
            raise TaskValidationError(f"{name} cannot be null")
        if name in ("title", "description"):
            _require_text(name, value)
        enum_type = _ENUM_FIELDS.get(name)
        if enum_type is not None:
            try:
                value = enum_type(value)
            except ValueError as e:
                raise TaskValidationError(f"Invalid {name}: {value}") from e
        changes[name] = value
    return changes
