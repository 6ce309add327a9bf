"""Workspace configuration loaded from YAML and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from gridedit.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default workspace location
DEFAULT_WORKSPACE_PATH = Path.home() / ".gridedit"
DEFAULT_CONFIG_PATH = DEFAULT_WORKSPACE_PATH / "config.yaml"

WORKSPACE_ENV = "GRIDEDIT_WORKSPACE"


@dataclass
class WorkspaceConfig:
    """Where and how project history logs are stored."""

    workspace_dir: Path = field(default_factory=lambda: DEFAULT_WORKSPACE_PATH)
    log_suffix: str = ".history"
    fsync: bool = True

    def log_path(self, project_id: Any) -> Path:
        return Path(self.workspace_dir) / f"{project_id}{self.log_suffix}"


def load_config(path: str | Path | None = None) -> WorkspaceConfig:
    """Load configuration from ``path`` (or the default file, if present).

    ``GRIDEDIT_WORKSPACE`` overrides ``workspace_dir`` from the file.
    """
    data: dict[str, Any] = {}
    if path is not None:
        data = _read_yaml(Path(path))
    elif DEFAULT_CONFIG_PATH.exists():
        data = _read_yaml(DEFAULT_CONFIG_PATH)

    known = {f.name for f in fields(WorkspaceConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")

    config = WorkspaceConfig(**data)
    config.workspace_dir = Path(config.workspace_dir).expanduser()
    if not isinstance(config.log_suffix, str):
        raise ConfigError("'log_suffix' must be a string")
    if not isinstance(config.fsync, bool):
        raise ConfigError("'fsync' must be true or false")

    override = os.environ.get(WORKSPACE_ENV)
    if override:
        logger.debug(f"{WORKSPACE_ENV} overrides workspace_dir with {override}")
        config.workspace_dir = Path(override).expanduser()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")
    return data
