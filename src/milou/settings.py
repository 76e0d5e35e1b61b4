"""Load MilouSettings from <home>/milou.yaml and the environment."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from . import MILOU_HOME
from .models import MilouSettings
from .templating import DeploymentMode

logger = logging.getLogger("milou.settings")

SETTINGS_FILE = "milou.yaml"


def load_settings(home: Optional[Path] = None) -> MilouSettings:
    """Build settings for a base directory.

    Values come from ``<home>/milou.yaml`` when present; the deployment
    mode falls back to ``NODE_ENV`` when the file does not set one. An
    unreadable or invalid file is logged and defaults are used.

    Args:
        home: Base directory. Defaults to $MILOU_HOME or ~/milou.

    Returns:
        MilouSettings: Resolved settings with ``home`` set.
    """
    home_path = (home or Path(MILOU_HOME)).expanduser()
    data: dict = {}

    settings_file = home_path / SETTINGS_FILE
    if settings_file.exists():
        try:
            data = yaml.safe_load(settings_file.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError("top level must be a mapping")
        except (yaml.YAMLError, ValueError) as exc:
            logger.warning("Failed to load %s: %s; using defaults", settings_file, exc)
            data = {}

    if "mode" not in data and os.environ.get("NODE_ENV"):
        data["mode"] = DeploymentMode.parse(os.environ["NODE_ENV"]).value

    data["home"] = home_path
    try:
        return MilouSettings(**data)
    except PydanticValidationError as exc:
        logger.warning("Invalid settings in %s: %s; using defaults", settings_file, exc)
        return MilouSettings(home=home_path)
