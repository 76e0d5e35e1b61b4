"""
Pydantic models for milou's settings and operation results.

Settings describe WHERE things live (explicit base directory, never the
process's working directory). Results describe WHAT an operation did so
callers never have to scrape log output.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .templating import DeploymentMode


class SecretFile(BaseModel):
    """A piece of secret material managed alongside the store.

    Attributes:
        path: Location relative to the base directory.
        mode: Permission bits the file must carry.
    """

    path: str
    mode: int = 0o600


DEFAULT_SECRET_FILES = [
    SecretFile(path="ssl/milou.key", mode=0o600),
    SecretFile(path="ssl/milou.crt", mode=0o644),
    SecretFile(path="ssl/ca.crt", mode=0o644),
]

DEFAULT_REQUIRED_KEYS = [
    "DATABASE_URI",
    "REDIS_HOST",
    "REDIS_PORT",
    "SESSION_SECRET",
    "ENCRYPTION_KEY",
    "ENGINE_URL",
]

DEFAULT_RECOMMENDED_KEYS = ["GHCR_TOKEN"]


class MilouSettings(BaseModel):
    """Where the store, its secrets and its backups live."""

    home: Path = Path("~/milou")
    env_file: str = ".env"
    template_file: str = ".env.template"
    backups_dir: str = "backups"
    secret_dir: str = "ssl"
    secret_files: list[SecretFile] = Field(default_factory=lambda: list(DEFAULT_SECRET_FILES))
    compose_patterns: list[str] = Field(
        default_factory=lambda: ["docker-compose*.yml", "production.yml"]
    )
    mode: DeploymentMode = DeploymentMode.PRODUCTION
    required_keys: list[str] = Field(default_factory=lambda: list(DEFAULT_REQUIRED_KEYS))
    recommended_keys: list[str] = Field(default_factory=lambda: list(DEFAULT_RECOMMENDED_KEYS))
    keep_backups: int = Field(default=10, ge=0)
    tar_binary: str = "tar"

    @property
    def base_dir(self) -> Path:
        return self.home.expanduser()

    @property
    def env_path(self) -> Path:
        return self.base_dir / self.env_file

    @property
    def template_path(self) -> Path:
        return self.base_dir / self.template_file

    @property
    def backups_path(self) -> Path:
        return self.base_dir / self.backups_dir


class BackupRecord(BaseModel):
    """An immutable, named snapshot archive on disk."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    size: int
    created: datetime


class RestoreResult(BaseModel):
    """Outcome of a restore: what was replaced, and the safety snapshot."""

    name: str
    restored: list[str] = Field(default_factory=list)
    safety_backup: Optional[str] = None


class MigrationResult(BaseModel):
    """Outcome of a single key migration."""

    key: str
    value: str
    applied: bool
    position: Optional[int] = None


class ValidationReport(BaseModel):
    """A passed validation, with any non-fatal recommendations."""

    path: Path
    checked_keys: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
