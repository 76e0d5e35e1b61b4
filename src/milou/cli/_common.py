"""Shared utilities for all CLI command modules.

Provides the Rich console, settings loading for a --home option and
the mapping from typed milou errors to a red message and exit code 1.
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Callable

from rich.console import Console

from .. import MILOU_HOME
from ..errors import MilouError
from ..models import MilouSettings
from ..settings import load_settings

console = Console()


def settings_for(home: str) -> MilouSettings:
    """Load settings for the --home directory given on the command line."""
    return load_settings(Path(home).expanduser())


def fail_on_error(func: Callable) -> Callable:
    """Print typed milou failures in red and exit 1 instead of a traceback."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (MilouError, ValueError) as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)

    return wrapper


__all__ = ["MILOU_HOME", "console", "fail_on_error", "settings_for"]
