"""Tests for TaskManager."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from task_tracker.api.models import HistoryAction, TaskFilters, TaskStatus
from task_tracker.classification.classifier import Category, Priority
from task_tracker.config import PaginationDefaults
from task_tracker.errors import TaskNotFoundError, TaskValidationError
from task_tracker.storage.task_store import SqliteTaskStore
from task_tracker.tasks.manager import TaskManager


def test_create_task_classifies_and_records_history(manager: TaskManager) -> None:
    """Test create derives metadata and writes one created entry."""
    task = manager.create_task(
        "Urgent budget review",
        "Meet Finance on 2024-03-15",
        assigned_to="ops",
        due_date="2024-03-20",
    )

    assert task.category == Category.FINANCE
    assert task.priority == Priority.HIGH
    assert task.status == TaskStatus.PENDING
    assert task.suggested_actions == [
        "Check budget",
        "Get approval",
        "Generate invoice",
        "Update records",
    ]
    assert task.extracted_entities.dates == ["2024-03-15"]
    assert task.assigned_to == "ops"
    assert task.due_date == "2024-03-20"

    history = manager.get_task_with_history(task.id).history
    assert len(history) == 1
    assert history[0].action == HistoryAction.CREATED
    assert history[0].old_value is None
    assert history[0].new_value == task.to_snapshot()


def test_create_task_overrides_only_verdict(manager: TaskManager) -> None:
    """Test overrides replace category/priority but not actions or entities."""
    task = manager.create_task(
        "Pay the invoice",
        "before 2024-07-01",
        override_category=Category.SAFETY,
        override_priority=Priority.HIGH,
    )
    preview = manager.preview_classification("Pay the invoice", "before 2024-07-01")

    assert task.category == Category.SAFETY
    assert task.priority == Priority.HIGH
    assert preview.category == Category.FINANCE
    assert task.suggested_actions == preview.suggested_actions
    assert task.extracted_entities == preview.extracted_entities


@pytest.mark.parametrize(("title", "description"), [("", "desc"), ("title", "   ")])
def test_create_task_requires_text(manager: TaskManager, title: str, description: str) -> None:
    """Test blank title or description is rejected before anything is stored."""
    with pytest.raises(TaskValidationError):
        manager.create_task(title, description)

    assert manager.list_tasks().total == 0


def test_preview_does_not_persist(manager: TaskManager) -> None:
    """Test classification preview has no side effects."""
    result = manager.preview_classification("Schedule a call", "with Priya")
    assert result.category == Category.SCHEDULING
    assert result.extracted_entities.people == ["Priya"]
    assert manager.list_tasks().total == 0


def test_legacy_people_extraction(store: SqliteTaskStore) -> None:
    """Test the legacy flag reaches the classifier."""
    legacy = TaskManager(store, legacy_people_extraction=True)
    task = legacy.create_task("Schedule a call", "with Priya")
    assert task.extracted_entities.people == []


def test_update_status_records_status_changed(manager: TaskManager) -> None:
    """Test a status patch writes a status_changed entry with the prior state."""
    created = manager.create_task("Repair the gate", "Hinge is loose")

    updated = manager.update_task(created.id, {"status": "in_progress"})

    assert updated.status == TaskStatus.IN_PROGRESS
    history = manager.get_task_with_history(created.id).history
    assert [h.action for h in history] == [HistoryAction.STATUS_CHANGED, HistoryAction.CREATED]
    assert history[0].old_value == created.to_snapshot()
    assert history[0].new_value == updated.to_snapshot()


def test_update_without_status_records_updated(manager: TaskManager) -> None:
    """Test a patch without status writes an updated entry."""
    created = manager.create_task("Repair the gate", "Hinge is loose")

    updated = manager.update_task(created.id, {"assigned_to": "Sam", "priority": Priority.HIGH})

    assert updated.assigned_to == "Sam"
    assert updated.priority == Priority.HIGH
    latest = manager.get_task_with_history(created.id).history[0]
    assert latest.action == HistoryAction.UPDATED


def test_update_does_not_reclassify(manager: TaskManager) -> None:
    """Test changing the text keeps the stored classification."""
    created = manager.create_task("Repair the gate", "Hinge is loose")
    updated = manager.update_task(created.id, {"title": "Pay the invoice"})
    assert updated.category == Category.TECHNICAL
    assert updated.suggested_actions == created.suggested_actions


def test_history_chain_is_consistent(manager: TaskManager) -> None:
    """Test each entry's old_value is the previous entry's new_value."""
    created = manager.create_task("Inspect ladders", "Yearly compliance check")
    manager.update_task(created.id, {"status": "in_progress"})
    manager.update_task(created.id, {"assigned_to": "Lee"})
    manager.update_task(created.id, {"status": "completed"})

    history = list(reversed(manager.get_task_with_history(created.id).history))
    assert len(history) == 4
    for previous, current in zip(history, history[1:], strict=False):
        assert current.old_value == previous.new_value


def test_concurrent_updates_keep_history_chain(manager: TaskManager) -> None:
    """Test that parallel updates on one task are serialized into an unbroken chain."""
    created = manager.create_task("Restock first aid kits", "All floors")

    with ThreadPoolExecutor(max_workers=16) as pool:
        futures = [
            pool.submit(manager.update_task, created.id, {"assigned_to": f"worker {i}"})
            for i in range(16)
        ]
        for future in futures:
            future.result()

    history = list(reversed(manager.get_history(created.id)))
    assert len(history) == 17
    assert history[0].action == HistoryAction.CREATED
    for previous, current in zip(history, history[1:], strict=False):
        assert current.old_value == previous.new_value


@pytest.mark.parametrize(
    "patch",
    [
        {},
        {"id": 5},
        {"created_at": "2020-01-01"},
        {"title": None},
        {"title": "  "},
        {"status": None},
        {"status": "archived"},
        {"category": "gardening"},
        {"priority": "extreme"},
    ],
)
def test_update_rejects_invalid_patch(manager: TaskManager, patch: dict[str, object]) -> None:
    """Test invalid patches are rejected without writing history."""
    created = manager.create_task("Repair the gate", "Hinge is loose")

    with pytest.raises(TaskValidationError):
        manager.update_task(created.id, patch)

    assert len(manager.get_task_with_history(created.id).history) == 1


def test_update_allows_clearing_optional_fields(manager: TaskManager) -> None:
    """Test assigned_to and due_date may be set to None."""
    created = manager.create_task("Repair the gate", "Hinge is loose", assigned_to="Kim")
    updated = manager.update_task(created.id, {"assigned_to": None})
    assert updated.assigned_to is None


def test_update_unknown_task(manager: TaskManager) -> None:
    """Test updating a missing task raises TaskNotFoundError."""
    with pytest.raises(TaskNotFoundError):
        manager.update_task(404, {"status": "completed"})


def test_get_task_with_history_not_found(manager: TaskManager) -> None:
    """Test an unknown id raises TaskNotFoundError."""
    with pytest.raises(TaskNotFoundError):
        manager.get_task_with_history(12345)


def test_delete_task_records_deleted(manager: TaskManager) -> None:
    """Test delete removes the task but keeps and extends its history."""
    created = manager.create_task("Repair the gate", "Hinge is loose")

    manager.delete_task(created.id)

    with pytest.raises(TaskNotFoundError):
        manager.get_task_with_history(created.id)

    history = manager.get_history(created.id)
    assert [h.action for h in history] == [HistoryAction.DELETED, HistoryAction.CREATED]
    assert history[0].old_value == created.to_snapshot()
    assert history[0].new_value is None


def test_delete_unknown_task(manager: TaskManager) -> None:
    """Test deleting a missing task raises TaskNotFoundError."""
    with pytest.raises(TaskNotFoundError):
        manager.delete_task(404)


def test_get_history_unknown_task(manager: TaskManager) -> None:
    """Test history of an id that never existed raises TaskNotFoundError."""
    with pytest.raises(TaskNotFoundError):
        manager.get_history(404)


def test_list_tasks_filters(manager: TaskManager) -> None:
    """Test status, category, priority and search filters."""
    boiler = manager.create_task("Repair the boiler", "Urgent, no hot water")
    manager.create_task("Pay the invoice", "Supplier reminder")
    manager.create_task("Repair the fence", "Whenever")
    manager.update_task(boiler.id, {"status": "in_progress"})

    technical = manager.list_tasks(TaskFilters(category=Category.TECHNICAL))
    assert technical.total == 2

    urgent = manager.list_tasks(TaskFilters(category=Category.TECHNICAL, priority=Priority.HIGH))
    assert [t.id for t in urgent.items] == [boiler.id]

    in_progress = manager.list_tasks(TaskFilters(status=TaskStatus.IN_PROGRESS))
    assert [t.id for t in in_progress.items] == [boiler.id]

    searched = manager.list_tasks(TaskFilters(search="FENCE"))
    assert [t.title for t in searched.items] == ["Repair the fence"]


def test_list_tasks_pages_are_contiguous(manager: TaskManager) -> None:
    """Test two consecutive pages equal the first four unpaged results."""
    for i in range(6):
        manager.create_task(f"Task {i}", "Something to do")

    everything = manager.list_tasks(limit=100)
    first = manager.list_tasks(limit=2, offset=0)
    second = manager.list_tasks(limit=2, offset=2)

    assert first.total == second.total == 6
    combined = [t.id for t in first.items] + [t.id for t in second.items]
    assert combined == [t.id for t in everything.items[:4]]
    assert not {t.id for t in first.items} & {t.id for t in second.items}


def test_list_tasks_uses_configured_defaults(store: SqliteTaskStore) -> None:
    """Test omitted limit/offset fall back to the pagination defaults."""
    manager = TaskManager(store, pagination=PaginationDefaults(default_limit=3, default_offset=1))
    for i in range(5):
        manager.create_task(f"Task {i}", "Something to do")

    page = manager.list_tasks()

    assert page.limit == 3
    assert page.offset == 1
    assert page.total == 5
    assert [t.title for t in page.items] == ["Task 3", "Task 2", "Task 1"]


def test_list_tasks_default_limit_is_ten(manager: TaskManager) -> None:
    """Test the standard default page size."""
    for i in range(12):
        manager.create_task(f"Task {i}", "Something to do")

    page = manager.list_tasks()

    assert page.limit == 10
    assert page.offset == 0
    assert len(page.items) == 10
    assert page.total == 12


@pytest.mark.parametrize(("limit", "offset"), [(0, 0), (101, 0), (10, -1)])
def test_list_tasks_rejects_bad_pagination(manager: TaskManager, limit: int, offset: int) -> None:
    """Test out-of-range limit/offset values."""
    with pytest.raises(TaskValidationError):
        manager.list_tasks(limit=limit, offset=offset)
