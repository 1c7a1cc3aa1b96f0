from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

PROJECT_CONFIG_FILENAME = ".env-sync.json"


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.api_url: str = os.environ.get("ENV_SYNC_API_URL", "https://api.envman.dev")
        self.token: str = os.environ.get("ENV_SYNC_TOKEN", "")
        self.env_file: str = os.environ.get("ENV_SYNC_ENV_FILE", ".env")
        self.poll_interval: float = float(os.environ.get("ENV_SYNC_POLL_INTERVAL", "60"))
        self.debounce: float = float(os.environ.get("ENV_SYNC_DEBOUNCE", "2.0"))
        self.timeout: float = float(os.environ.get("ENV_SYNC_TIMEOUT", "15.0"))

    def validate(self) -> None:
        if not self.api_url:
            raise ValueError("ENV_SYNC_API_URL environment variable is required")
        if not self.token:
            raise ValueError("ENV_SYNC_TOKEN environment variable is required")


settings = Settings()


class ProjectConfig(BaseModel):
    """Per-project configuration stored in ``.env-sync.json``."""

    project_name: str
    default_environment: str = "development"
    environments: list[str] = Field(
        default_factory=lambda: ["development", "staging", "production"]
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def find_project_root(start: Path) -> Path | None:
    """Walk up from *start* to find a directory with ``.env-sync.json``."""
    current = start.resolve()
    if current.is_file():
        current = current.parent
    for parent in [current, *current.parents]:
        if (parent / PROJECT_CONFIG_FILENAME).exists():
            return parent
    return None


def load_project_config(project_root: Path) -> ProjectConfig:
    """Read and validate the project config under *project_root*.

    Raises:
        FileNotFoundError: If the project has not been initialized.
    """
    raw = (project_root / PROJECT_CONFIG_FILENAME).read_text(encoding="utf-8")
    return ProjectConfig.model_validate_json(raw)


def save_project_config(project_root: Path, config: ProjectConfig) -> Path:
    """Persist *config* as pretty-printed JSON and return the file path."""
    path = project_root / PROJECT_CONFIG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(indent=2) + "\n", encoding="utf-8")
    return path
