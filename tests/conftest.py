"""Test fixtures for TaskTracker."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from task_tracker.config import Config, PaginationDefaults
from task_tracker.storage.task_store import SqliteTaskStore
from task_tracker.tasks.manager import TaskManager


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to a fresh SQLite database."""
    return tmp_path / "data" / "tasks.sqlite3"


@pytest.fixture
def store(db_path: Path) -> SqliteTaskStore:
    """Create a task store backed by a temporary database."""
    return SqliteTaskStore(db_path)


@pytest.fixture
def manager(store: SqliteTaskStore) -> TaskManager:
    """Create a task manager with default pagination."""
    return TaskManager(store, pagination=PaginationDefaults())


@pytest.fixture
def test_config(db_path: Path) -> Config:
    """Create test config pointing at the temporary database."""
    return Config(
        database_path=str(db_path),
        host="127.0.0.1",
        port=3000,
        default_limit=10,
        default_offset=0,
        max_limit=100,
    )


@pytest.fixture
def test_client(test_config: Config, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """Create test client with the factory wired to the test config."""
    from task_tracker.factory import create_app

    # Override factory config and drop any cached store/manager
    monkeypatch.setattr("task_tracker.factory._config", test_config)
    monkeypatch.setattr("task_tracker.factory._task_store", None)
    monkeypatch.setattr("task_tracker.factory._task_manager", None)

    app = create_app()

    with TestClient(app) as client:
        yield client
