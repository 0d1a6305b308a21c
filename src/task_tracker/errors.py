"""Errors raised by the task tracker core."""


class TaskTrackerError(Exception):
    """Base class for task tracker errors."""


class TaskValidationError(TaskTrackerError):
    """Caller-supplied task data is missing or invalid."""


class StoreError(TaskTrackerError):
    """The underlying store rejected an operation.

    The message is the store's own, passed through unchanged.
    """


class TaskNotFoundError(TaskTrackerError):
    """No task exists for the given id."""

    def __init__(self, task_id: int) -> None:
        """Initialize with the missing task id."""
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id
