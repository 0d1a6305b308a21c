"""Task API endpoints."""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response

from task_tracker.api.models import (
    ClassificationResponse,
    ClassifyRequest,
    CreateTaskRequest,
    HistoryEntryResponse,
    TaskDetailResponse,
    TaskFilters,
    TaskListResponse,
    TaskResponse,
    TaskStatus,
    UpdateTaskRequest,
    classification_to_response,
    history_to_response,
    task_to_response,
)
from task_tracker.classification.classifier import Category, Priority
from task_tracker.errors import StoreError, TaskNotFoundError, TaskValidationError
from task_tracker.factory import get_task_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/tasks/classify", response_model=ClassificationResponse)
async def classify_task(request: ClassifyRequest) -> ClassificationResponse:
    """Preview how a task would be classified, without saving it.

    Args:
        request: Title and description to classify

    Returns:
        Category, priority, suggested actions and extracted entities
    """
    result = get_task_manager().preview_classification(request.title, request.description)
    return classification_to_response(result)


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(request: CreateTaskRequest) -> TaskResponse:
    """Create a task, classifying its text.

    Args:
        request: Task fields plus optional category/priority overrides

    Returns:
        The persisted task

    Raises:
        HTTPException: If the task is invalid or the store rejects it
    """
    manager = get_task_manager()
    try:
        task = await asyncio.to_thread(
            manager.create_task,
            request.title,
            request.description,
            assigned_to=request.assigned_to,
            due_date=request.due_date,
            override_category=request.override_category,
            override_priority=request.override_priority,
        )
    except TaskValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StoreError as e:
        logger.error(f"Failed to create task: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    return task_to_response(task)


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(
    status: TaskStatus | None = None,
    category: Category | None = None,
    priority: Priority | None = None,
    search: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    offset: Annotated[int | None, Query(ge=0)] = None,
) -> TaskListResponse:
    """List tasks, newest first.

    Args:
        status: Exact status to match
        category: Exact category to match
        priority: Exact priority to match
        search: Case-insensitive substring of the title
        limit: Page size (configured default if omitted)
        offset: Number of matches to skip (configured default if omitted)

    Returns:
        The requested page and the total number of matches
    """
    manager = get_task_manager()
    filters = TaskFilters(status=status, category=category, priority=priority, search=search)
    try:
        page = await asyncio.to_thread(manager.list_tasks, filters, limit, offset)
    except TaskValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StoreError as e:
        logger.error(f"Failed to list tasks: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return TaskListResponse(
        data=[task_to_response(task) for task in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/tasks/{task_id}", response_model=TaskDetailResponse)
async def get_task(task_id: int) -> TaskDetailResponse:
    """Get a task with its full history, newest first.

    Raises:
        HTTPException: If the task does not exist
    """
    manager = get_task_manager()
    try:
        result = await asyncio.to_thread(manager.get_task_with_history, task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreError as e:
        logger.error(f"Failed to read task {task_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return TaskDetailResponse(
        **task_to_response(result.task).model_dump(),
        history=[history_to_response(entry) for entry in result.history],
    )


@router.get("/tasks/{task_id}/history", response_model=list[HistoryEntryResponse])
async def get_task_history(task_id: int) -> list[HistoryEntryResponse]:
    """Get the history of a task. Still available after the task is deleted."""
    manager = get_task_manager()
    try:
        history = await asyncio.to_thread(manager.get_history, task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreError as e:
        logger.error(f"Failed to read history for task {task_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    return [history_to_response(entry) for entry in history]


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(task_id: int, request: UpdateTaskRequest) -> TaskResponse:
    """Update task fields. Only fields present in the body are changed.

    Args:
        task_id: Task ID
        request: Fields to change

    Returns:
        The updated task

    Raises:
        HTTPException: If the task does not exist, the patch is invalid or the store rejects it
    """
    manager = get_task_manager()
    patch = request.model_dump(exclude_unset=True)
    try:
        task = await asyncio.to_thread(manager.update_task, task_id, patch)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except TaskValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StoreError as e:
        logger.error(f"Failed to update task {task_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    return task_to_response(task)


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: int) -> Response:
    """Delete a task. Its history is kept.

    Raises:
        HTTPException: If the task does not exist
    """
    manager = get_task_manager()
    try:
        await asyncio.to_thread(manager.delete_task, task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreError as e:
        logger.error(f"Failed to delete task {task_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    return Response(status_code=204)
