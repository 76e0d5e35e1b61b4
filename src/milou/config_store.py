"""
ConfigStore: the deployment's KEY=VALUE secrets file.

Every mutation rewrites the whole file through atomic_write() with
0600 permissions. Comments, blank lines and key order survive every
operation; only the line being changed is touched.

Usage:
    store = ConfigStore(home / ".env", mode=DeploymentMode.PRODUCTION)
    store.generate(template_text)
    store.set("DOMAIN", "example.com")
    store.validate()
    store.migrate("RABBITMQ_PORT", "ENGINE_URL", ENGINE_URLS)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Iterable, Optional, Union

from .atomic import SECRET_MODE, atomic_write, verify_perms
from .envfile import EnvFile
from .errors import (
    ConflictRequiresConfirmation,
    MilouIOError,
    NotFoundError,
    ValidationError,
)
from .models import (
    DEFAULT_RECOMMENDED_KEYS,
    DEFAULT_REQUIRED_KEYS,
    MigrationResult,
    ValidationReport,
)
from .templating import ENGINE_URLS, DeploymentMode, render_template

logger = logging.getLogger("milou.config_store")

# (anchor key, new key, default value per mode), applied in order.
MIGRATIONS: list[tuple[str, str, Mapping[DeploymentMode, str]]] = [
    ("RABBITMQ_PORT", "ENGINE_URL", ENGINE_URLS),
]

DefaultValue = Union[str, Mapping[DeploymentMode, str]]


def _check_key(key: str) -> None:
    if not key:
        raise ValueError("Key cannot be empty")
    if "=" in key or key != key.strip() or any(c.isspace() for c in key):
        raise ValueError(f"Invalid key: {key!r}")
    if key.startswith("#"):
        raise ValueError(f"Key cannot start with '#': {key!r}")


def _check_value(value: str) -> None:
    if "\n" in value or "\r" in value:
        raise ValueError("Value cannot contain a newline")
    # Values are trimmed on read, so padding would not survive a round trip.
    if value != value.strip():
        raise ValueError("Value cannot have leading or trailing whitespace")


class ConfigStore:
    """Ordered key/value persistence over a single 0600 file."""

    MODE = SECRET_MODE

    def __init__(self, path: Path, mode: DeploymentMode = DeploymentMode.PRODUCTION):
        """Bind the store to a file.

        Args:
            path: The .env file. It need not exist yet (see generate()).
            mode: Deployment mode used for mode-dependent defaults.
        """
        self.path = Path(path).expanduser()
        self.mode = mode

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.is_file()

    def _read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(
                f"Environment file not found: {self.path}", str(self.path)
            ) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise MilouIOError(self.path, f"cannot read: {exc}") from exc

    def _read(self) -> EnvFile:
        return EnvFile.parse(self._read_text())

    def _write(self, env: EnvFile) -> None:
        atomic_write(self.path, env.render(), self.MODE)

    def get(self, key: str) -> str:
        """Return the trimmed value of ``key``.

        Raises:
            NotFoundError: If the file or the key does not exist.
        """
        value = self._read().get(key)
        if value is None:
            raise NotFoundError(f"Key not found: {key}", key)
        return value

    def items(self) -> dict[str, str]:
        return self._read().as_dict()

    def show(self) -> str:
        """Return the raw file content after re-checking its permissions."""
        if not self.exists():
            raise NotFoundError(f"Environment file not found: {self.path}", str(self.path))
        verify_perms(self.path, self.MODE)
        return self._read_text()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def set(self, key: str, value: str) -> None:
        """Upsert one key, leaving every other line verbatim.

        Raises:
            ValueError: For an empty or malformed key, or a multi-line value.
            NotFoundError: If the store has not been generated yet.
        """
        _check_key(key)
        _check_value(value)
        env = self._read()
        env.set(key, value)
        logger.debug("Setting %s in %s", key, self.path)
        self._write(env)

    def generate(
        self,
        template_content: str,
        mode: Optional[DeploymentMode] = None,
        overwrite: bool = False,
    ) -> None:
        """Create the store from a template, synthesising every secret.

        Args:
            template_content: Template text with ``REPLACE_*`` placeholders.
            mode: Overrides the store's deployment mode for this render.
            overwrite: Must be True to replace an existing store.

        Raises:
            ConflictRequiresConfirmation: If the store exists and
                ``overwrite`` is False.
            TemplateError: If a placeholder has no generator.
        """
        if self.exists() and not overwrite:
            raise ConflictRequiresConfirmation(
                f"Environment file already exists: {self.path}", str(self.path)
            )
        content = render_template(template_content, mode or self.mode)
        self._write(EnvFile.parse(content))
        logger.info("Environment file generated: %s", self.path)
        logger.warning("Secrets have been generated. Keep this file secure (600 permissions).")

    def generate_from_file(
        self,
        template_path: Path,
        mode: Optional[DeploymentMode] = None,
        overwrite: bool = False,
    ) -> None:
        """Read a template file and generate() from it."""
        try:
            template = Path(template_path).read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(
                f"Template file not found: {template_path}", str(template_path)
            ) from exc
        self.generate(template, mode=mode, overwrite=overwrite)

    # ------------------------------------------------------------------
    # Validation and migration
    # ------------------------------------------------------------------

    def validate(
        self,
        required_keys: Optional[Iterable[str]] = None,
        recommended_keys: Optional[Iterable[str]] = None,
    ) -> ValidationReport:
        """Check permissions and that every required key has a value.

        Args:
            required_keys: Keys that must be present and non-empty.
            recommended_keys: Keys whose absence only produces a warning.

        Returns:
            ValidationReport: Passed validation plus any warnings.

        Raises:
            NotFoundError: If the store does not exist.
            PermissionMismatchError: If the file mode is not 0600.
            ValidationError: Listing every missing or empty required key.
        """
        required = list(DEFAULT_REQUIRED_KEYS if required_keys is None else required_keys)
        recommended = list(
            DEFAULT_RECOMMENDED_KEYS if recommended_keys is None else recommended_keys
        )

        verify_perms(self.path, self.MODE)
        values = self._read().as_dict()

        missing = [key for key in required if not values.get(key)]
        if missing:
            for key in missing:
                logger.error("Missing required variable: %s", key)
            raise ValidationError(missing)

        warnings = []
        for key in recommended:
            if not values.get(key):
                warnings.append(f"{key} not set")
                logger.warning("%s not set", key)

        logger.info("Environment file validated: %s", self.path)
        return ValidationReport(path=self.path, checked_keys=required, warnings=warnings)

    def _resolve_mode(self, env: EnvFile) -> DeploymentMode:
        return DeploymentMode.parse(env.get("NODE_ENV"), default=self.mode)

    def migrate(self, anchor_key: str, new_key: str, default: DefaultValue) -> MigrationResult:
        """Add ``new_key`` after ``anchor_key`` unless it already exists.

        Idempotent: a second run finds the key and writes nothing. When
        ``anchor_key`` is missing the new line is appended at the end.

        Args:
            anchor_key: Existing key to insert after.
            new_key: Key to add.
            default: A value, or a mapping of deployment mode to value.
                The mode is the store's NODE_ENV when set, else the
                store's configured mode.

        Returns:
            MigrationResult: What was (or was not) written.
        """
        _check_key(new_key)
        env = self._read()

        if env.has(new_key):
            existing = env.get(new_key) or ""
            logger.info("%s already present: %s", new_key, existing)
            verify_perms(self.path, self.MODE)
            return MigrationResult(key=new_key, value=existing, applied=False)

        if isinstance(default, Mapping):
            value = default[self._resolve_mode(env)]
        else:
            value = default
        _check_value(value)

        position = env.insert_after(anchor_key, new_key, value)
        if not env.has(anchor_key):
            logger.warning("%s not found; appending %s at end of file", anchor_key, new_key)
        self._write(env)
        logger.info("Added %s=%s", new_key, value)
        return MigrationResult(key=new_key, value=value, applied=True, position=position)

    def apply_migrations(self) -> list[MigrationResult]:
        """Run every built-in migration in order."""
        results = [self.migrate(anchor, key, default) for anchor, key, default in MIGRATIONS]
        logger.info("Migration completed for %s", self.path)
        return results
