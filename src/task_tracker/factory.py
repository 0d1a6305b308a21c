"""Dependency injection factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from task_tracker.config import Config
from task_tracker.storage.task_store import SqliteTaskStore, TaskStore
from task_tracker.tasks.manager import TaskManager

logger = logging.getLogger(__name__)

# Global config instance for dependency injection
_config: Config | None = None

# Global store and manager, created on first use
_task_store: TaskStore | None = None
_task_manager: TaskManager | None = None


def get_config() -> Config:
    """Get or create Config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_task_store() -> TaskStore:
    """Get or create the task store singleton."""
    global _task_store
    if _task_store is None:
        config = get_config()
        _task_store = SqliteTaskStore(config.database_path)
    return _task_store


def get_task_manager() -> TaskManager:
    """Get or create the TaskManager singleton."""
    global _task_manager
    if _task_manager is None:
        config = get_config()
        _task_manager = TaskManager(
            get_task_store(),
            pagination=config.pagination(),
            legacy_people_extraction=config.legacy_people_extraction,
        )
    return _task_manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - open the store before serving requests."""
    config = get_config()
    logger.info(f"[Lifespan] Opening task store at {config.database_path}")
    get_task_manager()
    if config.legacy_people_extraction:
        logger.warning("[Lifespan] Legacy people extraction enabled, people will always be empty")
    yield
    logger.info("[Lifespan] Shutting down")


def create_app() -> FastAPI:
    """Create FastAPI application (composition root)."""
    from task_tracker.api.tasks import router as tasks_router

    config = get_config()

    app = FastAPI(
        title="TaskTracker",
        description="Track tasks with automatic classification and a full change history",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(tasks_router, prefix="/api")

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness check."""
        return {"status": "ok"}

    return app
