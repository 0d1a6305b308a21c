"""Configuration for TaskTracker."""

from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings


@dataclass
class PaginationDefaults:
    """Paging used when a listing request leaves limit or offset out."""

    default_limit: int = 10
    default_offset: int = 0
    max_limit: int = 100


class Config(BaseSettings):
    """Application configuration."""

    database_path: str = Field(default="tasks.sqlite3")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    default_limit: int = Field(default=10, ge=1)
    default_offset: int = Field(default=0, ge=0)
    max_limit: int = Field(default=100, ge=1)
    # Reproduce the old lower-case people scan, which never finds a name
    legacy_people_extraction: bool = Field(default=False)

    def pagination(self) -> PaginationDefaults:
        """Get pagination defaults."""
        return PaginationDefaults(
            default_limit=self.default_limit,
            default_offset=self.default_offset,
            max_limit=self.max_limit,
        )
