"""Typed failures raised by the configuration store and backup manager.

Every operation surfaces one of these to its caller. Nothing is
downgraded to a warning except the pre-restore safety backup.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional


class MilouError(Exception):
    """Base class for all milou failures."""


class NotFoundError(MilouError, LookupError):
    """Raised when a file, a key, or a named backup does not exist."""

    def __init__(self, message: str, target: Optional[str] = None):
        super().__init__(message)
        self.target = target


class PermissionMismatchError(MilouError):
    """Raised when a file's permission bits differ from the required mode."""

    def __init__(self, path: Path, expected: int, actual: int):
        super().__init__(
            f"Permission mismatch on {path}: expected {expected:o}, found {actual:o}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class ValidationError(MilouError):
    """Raised when required configuration keys are absent or empty."""

    def __init__(self, missing_keys: Iterable[str]):
        self.missing_keys = list(missing_keys)
        super().__init__(
            "Missing required configuration keys: " + ", ".join(self.missing_keys)
        )


class ConflictRequiresConfirmation(MilouError):
    """Raised when an operation would overwrite existing data without consent."""

    def __init__(self, message: str, target: Optional[str] = None):
        super().__init__(message)
        self.target = target


class ExternalToolError(MilouError):
    """Raised when an external tool (tar) exits non-zero or cannot run."""

    def __init__(self, tool: str, returncode: Optional[int], stderr: str = ""):
        detail = stderr.strip() or "no output"
        if returncode is None:
            message = f"{tool} could not be executed: {detail}"
        else:
            message = f"{tool} exited with status {returncode}: {detail}"
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


class MilouIOError(MilouError, OSError):
    """Raised on a filesystem failure. A failed atomic write leaves its target untouched."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"I/O error on {path}: {reason}")
        self.path = path
        self.reason = reason


class TemplateError(MilouError):
    """Raised when a template still holds placeholders after substitution."""

    def __init__(self, unresolved: Iterable[str]):
        self.unresolved = sorted(set(unresolved))
        super().__init__("Unresolved template placeholders: " + ", ".join(self.unresolved))
