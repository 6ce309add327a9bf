"""Registry of cross-project join relationships."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from collections.abc import Hashable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gridedit.project import Project

logger = logging.getLogger(__name__)

JoinKey = tuple[Hashable, str, Hashable, str]


@dataclass
class ProjectJoin:
    """Index of rows in ``to_project`` keyed by their ``to_column`` value."""

    from_project_id: Hashable
    from_column: str
    to_project_id: Hashable
    to_column: str
    value_to_row_indices: dict[Any, list[int]] = field(default_factory=dict)

    @property
    def key(self) -> JoinKey:
        return (self.from_project_id, self.from_column, self.to_project_id, self.to_column)

    def involves(self, project_id: Hashable) -> bool:
        return project_id in (self.from_project_id, self.to_project_id)

    def get_rows(self, value: Any) -> list[int]:
        """Row indices in the target project whose join cell holds ``value``."""
        return list(self.value_to_row_indices.get(value, ()))


class InterProjectModel:
    """Shared join registry, synchronized independently of any project lock.

    Callers may hold a project lock while flushing; join computation takes
    project locks only while the registry lock is released, so the lock
    order is always project first, registry second.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._joins: dict[JoinKey, ProjectJoin] = {}
        self._generations: defaultdict[Hashable, int] = defaultdict(int)

    def get_join(
        self,
        from_project: Project,
        from_column: str,
        to_project: Project,
        to_column: str,
    ) -> ProjectJoin:
        """Return the join between two project columns, computing it if needed."""
        key = (from_project.id, from_column, to_project.id, to_column)
        with self._lock:
            join = self._joins.get(key)
            if join is not None:
                return join
            seen = (self._generations[from_project.id], self._generations[to_project.id])

        join = _compute_join(from_project, from_column, to_project, to_column)

        with self._lock:
            current = (self._generations[from_project.id], self._generations[to_project.id])
            if current != seen:
                # one of the projects changed shape while the join was built
                logger.debug(f"Not caching stale join {key!r}")
                return join
            return self._joins.setdefault(key, join)

    def has_join(self, key: JoinKey) -> bool:
        with self._lock:
            return key in self._joins

    def joins_involving(self, project_id: Hashable) -> list[ProjectJoin]:
        with self._lock:
            return [j for j in self._joins.values() if j.involves(project_id)]

    def flush_joins_involving_project(self, project_id: Hashable) -> int:
        """Drop every join that reads from or points at ``project_id``."""
        with self._lock:
            stale = [k for k, j in self._joins.items() if j.involves(project_id)]
            for key in stale:
                del self._joins[key]
            self._generations[project_id] += 1
        if stale:
            logger.debug(f"Flushed {len(stale)} join(s) involving project {project_id!r}")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._joins)


def _compute_join(
    from_project: Project,
    from_column: str,
    to_project: Project,
    to_column: str,
) -> ProjectJoin:
    join = ProjectJoin(from_project.id, from_column, to_project.id, to_column)
    with to_project.lock:
        column = to_project.get_column(to_column)
        if column is None:
            logger.debug(f"Project {to_project.id!r} has no column {to_column!r}")
            return join
        for index, row in enumerate(to_project.rows):
            value = row.get_cell_value(column.cell_index)
            if value is None or value == "":
                continue
            join.value_to_row_indices.setdefault(value, []).append(index)
    return join
