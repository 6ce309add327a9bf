"""Project: the mutable grid container and unit of locking."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from gridedit.interproject import InterProjectModel
from gridedit.models import ColumnMetadata, Row


@dataclass(frozen=True, slots=True)
class ProjectSnapshot:
    """Columns and rows of a project read under one acquisition of its lock."""

    columns: tuple[ColumnMetadata, ...]
    rows: tuple[Row, ...]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def values(self) -> list[list]:
        """Row values laid out in column order."""
        return [[row.get_cell_value(c.cell_index) for c in self.columns] for row in self.rows]


class Project:
    """An ordered grid of rows and columns identified by an immutable id.

    ``columns`` and ``rows`` are the live containers. Anything that mutates
    them must hold ``lock`` and swap both within the same critical section,
    then call :meth:`update`.
    """

    def __init__(
        self,
        project_id: Hashable,
        columns: Iterable[ColumnMetadata] = (),
        rows: Iterable[Row] = (),
        *,
        inter_project_model: InterProjectModel | None = None,
    ) -> None:
        self._id = project_id
        self.columns: list[ColumnMetadata] = list(columns)
        self.rows: list[Row] = list(rows)
        self.lock = threading.RLock()
        if inter_project_model is None:
            inter_project_model = InterProjectModel()
        self.inter_project_model = inter_project_model
        self.revision = 0
        self.last_modified: datetime | None = None
        self._columns_by_name: dict[str, ColumnMetadata] = {}
        self._max_cell_index = -1
        self.update()

    @property
    def id(self) -> Hashable:
        return self._id

    def __repr__(self) -> str:
        return (
            f"Project(id={self._id!r}, columns={len(self.columns)}, "
            f"rows={len(self.rows)})"
        )

    # ------------------------------------------------------------------
    # Live containers
    # ------------------------------------------------------------------

    def get_columns(self) -> list[ColumnMetadata]:
        return self.columns

    def get_rows(self) -> list[Row]:
        return self.rows

    def update(self) -> None:
        """Recompute state derived from the grid after a structural change."""
        with self.lock:
            self._columns_by_name = {c.name: c for c in self.columns}
            self._max_cell_index = max((c.cell_index for c in self.columns), default=-1)
            self.revision += 1
            self.last_modified = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Derived lookups
    # ------------------------------------------------------------------

    def get_column(self, name: str) -> ColumnMetadata | None:
        with self.lock:
            return self._columns_by_name.get(name)

    def column_names(self) -> list[str]:
        with self.lock:
            return [c.name for c in self.columns]

    def next_cell_index(self) -> int:
        """Cell index a newly added column should use."""
        with self.lock:
            return self._max_cell_index + 1

    def snapshot(self) -> ProjectSnapshot:
        with self.lock:
            return ProjectSnapshot(tuple(self.columns), tuple(self.rows))
