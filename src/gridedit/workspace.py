"""Workspace — owns open projects, their histories and the shared join registry."""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable, Iterable
from typing import Any

from gridedit.changelog import HistoryLog
from gridedit.config import WorkspaceConfig
from gridedit.exceptions import DuplicateProjectError, ProjectNotFoundError
from gridedit.history import History
from gridedit.interproject import InterProjectModel
from gridedit.models import ColumnMetadata, Row
from gridedit.project import Project

logger = logging.getLogger(__name__)


class Workspace:
    """The set of projects open in one process.

    All projects created here share :attr:`inter_project_model`, so a
    structural change to one project invalidates joins held by the others.
    """

    def __init__(self, config: WorkspaceConfig | None = None) -> None:
        self.config = config or WorkspaceConfig()
        self.inter_project_model = InterProjectModel()
        self._projects: dict[Hashable, Project] = {}
        self._histories: dict[Hashable, History] = {}
        self._lock = threading.Lock()

    def __contains__(self, project_id: Any) -> bool:
        with self._lock:
            return project_id in self._projects

    def project_ids(self) -> list[Hashable]:
        with self._lock:
            return list(self._projects)

    def open_log(self, project_id: Hashable) -> HistoryLog:
        return HistoryLog(self.config.log_path(project_id), fsync=self.config.fsync)

    def create_project(
        self,
        project_id: Hashable,
        columns: Iterable[ColumnMetadata] = (),
        rows: Iterable[Row] = (),
    ) -> Project:
        """Open a new project with a fresh history log.

        A non-empty starting grid is written to the log first, so recovery
        reproduces it even before any entry exists.
        """
        if project_id in self:
            raise DuplicateProjectError(f"Project already open: {project_id!r}")
        project = Project(
            project_id, columns, rows, inter_project_model=self.inter_project_model
        )
        log = self.open_log(project_id)
        if log.exists():
            raise DuplicateProjectError(
                f"History log already exists for project {project_id!r}: {log.path}"
            )
        history = History(project, log)
        if project.columns or project.rows:
            history.record_initial_grid()
        self._register(project, history)
        logger.info(f"Created project {project_id!r}")
        return project

    def recover_project(
        self,
        project_id: Hashable,
        *,
        tolerate_truncated_tail: bool = False,
    ) -> Project:
        """Rebuild a project by replaying its history log onto an empty grid."""
        if project_id in self:
            raise DuplicateProjectError(f"Project already open: {project_id!r}")
        project = Project(project_id, inter_project_model=self.inter_project_model)
        history = History.recover(
            project,
            self.open_log(project_id),
            tolerate_truncated_tail=tolerate_truncated_tail,
        )
        self._register(project, history)
        return project

    def get_project(self, project_id: Hashable) -> Project:
        with self._lock:
            try:
                return self._projects[project_id]
            except KeyError:
                raise ProjectNotFoundError(f"Project not found: {project_id!r}") from None

    def get_history(self, project_id: Hashable) -> History:
        with self._lock:
            try:
                return self._histories[project_id]
            except KeyError:
                raise ProjectNotFoundError(f"Project not found: {project_id!r}") from None

    def close_project(self, project_id: Hashable) -> None:
        """Forget a project and drop every join that involves it."""
        with self._lock:
            if project_id not in self._projects:
                raise ProjectNotFoundError(f"Project not found: {project_id!r}")
            del self._projects[project_id]
            del self._histories[project_id]
        self.inter_project_model.flush_joins_involving_project(project_id)
        logger.info(f"Closed project {project_id!r}")

    def _register(self, project: Project, history: History) -> None:
        with self._lock:
            if project.id in self._projects:
                raise DuplicateProjectError(f"Project already open: {project.id!r}")
            self._projects[project.id] = project
            self._histories[project.id] = history
