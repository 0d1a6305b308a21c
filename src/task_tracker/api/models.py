"""API models for TaskTracker."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from task_tracker.classification.classifier import (
    Category,
    ClassificationResult,
    ExtractedEntities,
    Priority,
)


class TaskStatus(str, Enum):
    """Task lifecycle states. New tasks always start as pending."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HistoryAction(str, Enum):
    """Kind of mutation recorded in a history entry."""

    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    DELETED = "deleted"


@dataclass
class Task:
    """Persisted task."""

    id: int  # Assigned by the store
    title: str
    description: str
    assigned_to: str | None
    due_date: str | None
    category: Category
    priority: Priority
    suggested_actions: list[str]
    extracted_entities: ExtractedEntities
    status: TaskStatus
    created_at: datetime  # Assigned by the store

    def to_snapshot(self) -> dict[str, Any]:
        """Full JSON-compatible copy of the task, as stored in history."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "due_date": self.due_date,
            "category": self.category.value,
            "priority": self.priority.value,
            "suggested_actions": list(self.suggested_actions),
            "extracted_entities": asdict(self.extracted_entities),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TaskHistoryEntry:
    """Immutable audit record of one task mutation."""

    id: int
    task_id: int  # Not enforced; history outlives the task
    action: HistoryAction
    old_value: dict[str, Any] | None  # None for created
    new_value: dict[str, Any] | None  # None for deleted
    changed_at: datetime


@dataclass
class TaskFilters:
    """Exact-match filters plus a case-insensitive title search, ANDed together."""

    status: TaskStatus | None = None
    category: Category | None = None
    priority: Priority | None = None
    search: str | None = None


@dataclass
class Pagination:
    """Offset/limit window over an ordered result set."""

    limit: int
    offset: int


@dataclass
class TaskPage:
    """One page of tasks plus the total number of matches."""

    items: list[Task]
    total: int
    limit: int
    offset: int


@dataclass
class TaskWithHistory:
    """Task together with its history, newest first."""

    task: Task
    history: list[TaskHistoryEntry] = field(default_factory=list)


class CreateTaskRequest(BaseModel):
    """Request model for creating a task."""

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    assigned_to: str | None = None
    due_date: str | None = None
    override_category: Category | None = None
    override_priority: Priority | None = None


class UpdateTaskRequest(BaseModel):
    """Request model for patching a task. Only fields that are sent are applied."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    assigned_to: str | None = None
    due_date: str | None = None
    category: Category | None = None
    priority: Priority | None = None
    status: TaskStatus | None = None


class ClassifyRequest(BaseModel):
    """Request model for a classification preview."""

    title: str | None = ""
    description: str | None = ""


class ExtractedEntitiesResponse(BaseModel):
    """API response model for extracted entities."""

    dates: list[str]
    people: list[str]


class ClassificationResponse(BaseModel):
    """API response model for a classification preview."""

    category: Category
    priority: Priority
    suggested_actions: list[str]
    extracted_entities: ExtractedEntitiesResponse


class TaskResponse(BaseModel):
    """API response model for tasks."""

    id: int
    title: str
    description: str
    assigned_to: str | None
    due_date: str | None
    category: Category
    priority: Priority
    suggested_actions: list[str]
    extracted_entities: ExtractedEntitiesResponse
    status: TaskStatus
    created_at: datetime


class HistoryEntryResponse(BaseModel):
    """API response model for history entries."""

    id: int
    task_id: int
    action: HistoryAction
    old_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    changed_at: datetime


class TaskDetailResponse(TaskResponse):
    """API response model for a task with its history."""

    history: list[HistoryEntryResponse]


class TaskListResponse(BaseModel):
    """API response model for a page of tasks."""

    data: list[TaskResponse]
    total: int
    limit: int
    offset: int


def task_to_response(task: Task) -> TaskResponse:
    """Convert Task to TaskResponse."""
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        assigned_to=task.assigned_to,
        due_date=task.due_date,
        category=task.category,
        priority=task.priority,
        suggested_actions=task.suggested_actions,
        extracted_entities=_entities_to_response(task.extracted_entities),
        status=task.status,
        created_at=task.created_at,
    )


def history_to_response(entry: TaskHistoryEntry) -> HistoryEntryResponse:
    """Convert TaskHistoryEntry to HistoryEntryResponse."""
    return HistoryEntryResponse(
        id=entry.id,
        task_id=entry.task_id,
        action=entry.action,
        old_value=entry.old_value,
        new_value=entry.new_value,
        changed_at=entry.changed_at,
    )


def classification_to_response(result: ClassificationResult) -> ClassificationResponse:
    """Convert ClassificationResult to ClassificationResponse."""
    return ClassificationResponse(
        category=result.category,
        priority=result.priority,
        suggested_actions=result.suggested_actions,
        extracted_entities=_entities_to_response(result.extracted_entities),
    )


def _entities_to_response(entities: ExtractedEntities) -> ExtractedEntitiesResponse:
    return ExtractedEntitiesResponse(dates=entities.dates, people=entities.people)
