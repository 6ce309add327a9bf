"""Custom exception hierarchy for gridedit."""

from __future__ import annotations


class GridEditError(Exception):
    """Base exception for all gridedit errors."""


class ChangeStateError(GridEditError):
    """Change used out of order (revert or save before old state exists)."""


class ChangeLoadError(GridEditError):
    """A serialized change record could not be parsed."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class HistoryError(GridEditError):
    """Invalid history navigation or inconsistent history log."""


class ProjectNotFoundError(GridEditError):
    """Project id is not known to the workspace."""


class DuplicateProjectError(GridEditError):
    """A project with the same id is already open."""


class ConfigError(GridEditError):
    """Configuration file is unreadable or has unexpected content."""
