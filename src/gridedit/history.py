"""Per-project undo/redo history and replay of persisted changes."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TextIO

from gridedit.changes import (
    Change,
    LineReader,
    MassRowColumnChange,
    load_change,
    save_change,
)
from gridedit.exceptions import ChangeLoadError, HistoryError
from gridedit.project import Project

if TYPE_CHECKING:
    from gridedit.changelog import HistoryLog

logger = logging.getLogger(__name__)

ENTRY_FIELD = "entry"


@dataclass
class HistoryEntry:
    """One applied (or undone) change together with its description."""

    id: int
    description: str
    change: Change
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def save(self, writer: TextIO, options: Mapping[str, Any] | None = None) -> None:
        header = {
            "id": self.id,
            "description": self.description,
            "time": self.time.isoformat(),
        }
        writer.write(f"{ENTRY_FIELD}={json.dumps(header, ensure_ascii=False)}\n")
        save_change(self.change, writer, options)

    @classmethod
    def load(
        cls,
        header: str,
        reader: LineReader,
        options: Mapping[str, Any] | None = None,
    ) -> HistoryEntry:
        """Parse an ``entry=`` header value and read the change that follows it."""
        header_line = reader.line_number
        try:
            data = json.loads(header)
            entry_id = int(data["id"])
            description = str(data.get("description", ""))
            time = datetime.fromisoformat(data["time"])
        except (ValueError, TypeError, KeyError) as e:
            raise ChangeLoadError(f"Malformed history entry header: {e}", header_line) from e
        return cls(
            id=entry_id,
            description=description,
            change=load_change(reader, options),
            time=time,
        )


def split_at_position(
    entries: list[HistoryEntry], last_done_entry_id: int
) -> tuple[list[HistoryEntry], list[HistoryEntry]]:
    """Split entries into (done, undone) around the last done entry id.

    An id of 0 means nothing is done.
    """
    if last_done_entry_id == 0:
        return [], list(entries)
    for index, entry in enumerate(entries):
        if entry.id == last_done_entry_id:
            return entries[: index + 1], entries[index + 1:]
    raise HistoryError(f"No history entry with id {last_done_entry_id}")


class History:
    """Ordered list of changes applied to one project, driving undo and redo.

    Every change is applied or reverted before the history records the
    move, and the move is then appended to ``log`` (when one is attached).
    Log writes happen under the history's lock but never under the
    project's lock.
    """

    def __init__(self, project: Project, log: HistoryLog | None = None) -> None:
        self.project = project
        self.log = log
        # grid the project started from, when it was not empty
        self.initial: Change | None = None
        self._past: list[HistoryEntry] = []
        self._future: list[HistoryEntry] = []
        self._next_id = 1
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def past(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._past)

    @property
    def future(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._future)

    @property
    def last_done_entry_id(self) -> int:
        with self._lock:
            return self._past[-1].id if self._past else 0

    @property
    def can_undo(self) -> bool:
        with self._lock:
            return bool(self._past)

    @property
    def can_redo(self) -> bool:
        with self._lock:
            return bool(self._future)

    def get_entry(self, entry_id: int) -> HistoryEntry | None:
        with self._lock:
            for entry in self._past + self._future:
                if entry.id == entry_id:
                    return entry
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_entry(self, description: str, change: Change) -> HistoryEntry:
        """Apply ``change`` and record it; anything undone is discarded."""
        with self._lock:
            change.apply(self.project)
            entry = HistoryEntry(self._next_id, description, change)
            self._next_id += 1
            self._past.append(entry)
            if self._future:
                logger.debug(f"Discarding {len(self._future)} undone entr(ies)")
                self._future.clear()
            if self.log is not None:
                self.log.append_entry(entry)
        logger.debug(f"Project {self.project.id!r}: added entry {entry.id} ({description})")
        return entry

    def undo(self) -> HistoryEntry | None:
        """Revert the newest done entry. Returns ``None`` if there is none."""
        with self._lock:
            if not self._past:
                return None
            entry = self._undo_one()
            self._record_position()
        return entry

    def redo(self) -> HistoryEntry | None:
        """Re-apply the oldest undone entry. Returns ``None`` if there is none."""
        with self._lock:
            if not self._future:
                return None
            entry = self._redo_one()
            self._record_position()
        return entry

    def undo_redo(self, last_done_entry_id: int) -> None:
        """Undo or redo until ``last_done_entry_id`` is the newest done entry."""
        with self._lock:
            if last_done_entry_id == self.last_done_entry_id:
                return
            if last_done_entry_id == 0 or any(e.id == last_done_entry_id for e in self._past):
                while self._past and self._past[-1].id != last_done_entry_id:
                    self._undo_one()
            elif any(e.id == last_done_entry_id for e in self._future):
                while not self._past or self._past[-1].id != last_done_entry_id:
                    self._redo_one()
            else:
                raise HistoryError(f"No history entry with id {last_done_entry_id}")
            self._record_position()

    def record_initial_grid(self) -> None:
        """Log the project's current grid as the state replay starts from.

        Only allowed before the first entry. Without it, replay starts from
        an empty grid.
        """
        with self._lock:
            if self._past or self._future:
                raise HistoryError("The starting grid must be recorded before any entry")
            snapshot = self.project.snapshot()
            change = MassRowColumnChange(snapshot.columns, snapshot.rows)
            # captures an empty old state
            change.apply(Project(self.project.id))
            self.initial = change
            if self.log is not None:
                self.log.append_initial(change)

    def compact(self) -> None:
        """Rewrite the attached log so it holds one record per live entry."""
        with self._lock:
            if self.log is None:
                raise HistoryError("History has no log to compact")
            self.log.rewrite(
                self._past + self._future, self.last_done_entry_id, self.initial
            )

    def _undo_one(self) -> HistoryEntry:
        entry = self._past[-1]
        entry.change.revert(self.project)
        self._past.pop()
        self._future.insert(0, entry)
        logger.debug(f"Project {self.project.id!r}: undid entry {entry.id}")
        return entry

    def _redo_one(self) -> HistoryEntry:
        entry = self._future[0]
        entry.change.apply(self.project)
        self._future.pop(0)
        self._past.append(entry)
        logger.debug(f"Project {self.project.id!r}: redid entry {entry.id}")
        return entry

    def _record_position(self) -> None:
        if self.log is not None:
            self.log.append_position(self.last_done_entry_id)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    @classmethod
    def from_entries(
        cls,
        project: Project,
        entries: Iterable[HistoryEntry],
        last_done_entry_id: int,
        log: HistoryLog | None = None,
        initial: Change | None = None,
    ) -> History:
        """Rebuild a history and re-apply its done entries in order.

        The entries' changes must already carry their old state, as loaded
        changes do, so applying them restores rather than recomputes.
        ``initial`` is applied first when given.
        """
        entries = list(entries)
        past, future = split_at_position(entries, last_done_entry_id)
        history = cls(project, log)
        with history._lock:
            if initial is not None:
                initial.apply(project)
            for entry in past:
                entry.change.apply(project)
            if not past and future:
                # nothing done: restore the grid the first entry replaced
                future[0].change.apply(project)
                future[0].change.revert(project)
            history.initial = initial
            history._past = past
            history._future = future
            history._next_id = max((e.id for e in entries), default=0) + 1
        return history

    @classmethod
    def recover(
        cls,
        project: Project,
        log: HistoryLog,
        *,
        tolerate_truncated_tail: bool = False,
    ) -> History:
        """Replay ``log`` onto ``project`` and return the history it describes."""
        contents = log.read_contents(tolerate_truncated_tail=tolerate_truncated_tail)
        history = cls.from_entries(
            project, contents.entries, contents.position, log, contents.initial
        )
        logger.info(
            f"Recovered project {project.id!r} from {log.path}: "
            f"{len(history._past)} done, {len(history._future)} undone"
        )
        return history
