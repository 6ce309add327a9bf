"""
Append-only history log for gridedit projects.

Each project's history is persisted as a UTF-8 text file holding one record
per history event, so a crash loses at most the record being written:

    initial=
    change=MassRowColumnChange
    ...
    /ec/
    entry={"id": 1, "description": "Replace grid", "time": "..."}
    change=MassRowColumnChange
    ...
    /ec/
    position=0

An optional leading ``initial=`` record holds the grid the project started
with. An ``entry=`` record adds an entry after the current position,
dropping any undone entries beyond it. A ``position=`` record moves the
undo/redo position to the given entry id (0 = nothing done).
"""
from __future__ import annotations

import io
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Tuple

from .changes import Change, LineReader, load_change, save_change
from .exceptions import ChangeLoadError, HistoryError
from .history import ENTRY_FIELD, HistoryEntry, split_at_position

logger = logging.getLogger(__name__)

INITIAL_FIELD = "initial"
POSITION_FIELD = "position"


@dataclass
class LogContents:
    """Everything a history log describes."""
    entries: List[HistoryEntry] = field(default_factory=list)
    position: int = 0
    initial: Optional[Change] = None


class _CountingLines:
    """Decoded lines of a binary file, tracking how many bytes were consumed."""

    def __init__(self, f: BinaryIO):
        self._f = f
        self.offset = 0
        self.line_number = 0
        self.terminated = True

    def __iter__(self):
        return self

    def __next__(self) -> str:
        raw = self._f.readline()
        if not raw:
            raise StopIteration
        self.offset += len(raw)
        self.line_number += 1
        self.terminated = raw.endswith(b"\n")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ChangeLoadError(f"Invalid UTF-8: {e}", self.line_number) from e


class HistoryLog:
    """Reads and appends the history records of a single project."""

    def __init__(
        self,
        path: Path,
        fsync: bool = True,
        options: Optional[Mapping[str, Any]] = None,
    ):
        self.path = Path(path)
        self.fsync = fsync
        self.options: Dict[str, Any] = dict(options or {})
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"HistoryLog({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.exists()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append_initial(self, change: Change) -> None:
        """Append the record of the grid the project started with."""
        buf = io.StringIO()
        self._write_initial(buf, change)
        self._append(buf.getvalue())
        logger.debug(f"Logged starting grid to {self.path}")

    def append_entry(self, entry: HistoryEntry) -> None:
        """Append one entry record."""
        buf = io.StringIO()
        entry.save(buf, self.options)
        self._append(buf.getvalue())
        logger.debug(f"Logged entry {entry.id} to {self.path}")

    def append_position(self, last_done_entry_id: int) -> None:
        """Append an undo/redo position record."""
        self._append(f"{POSITION_FIELD}={last_done_entry_id}\n")

    def rewrite(
        self,
        entries: List[HistoryEntry],
        last_done_entry_id: int,
        initial: Optional[Change] = None,
    ) -> None:
        """Replace the log with one record per entry plus the final position.

        The new content is written to a sibling file and moved into place,
        so readers see either the old log or the complete new one.
        """
        buf = io.StringIO()
        if initial is not None:
            self._write_initial(buf, initial)
        for entry in entries:
            entry.save(buf, self.options)
        buf.write(f"{POSITION_FIELD}={last_done_entry_id}\n")

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(buf.getvalue())
                self._sync(f)
            os.replace(tmp_path, self.path)
        logger.info(f"Compacted {self.path} to {len(entries)} entr(ies)")

    def _write_initial(self, buf: io.StringIO, change: Change) -> None:
        buf.write(f"{INITIAL_FIELD}=\n")
        save_change(change, buf, self.options)

    def _append(self, text: str) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(text)
                self._sync(f)

    def _truncate(self, size: int) -> None:
        with self._lock:
            with open(self.path, "r+b") as f:
                f.truncate(size)
                self._sync(f)

    def _sync(self, f) -> None:
        f.flush()
        if self.fsync:
            os.fsync(f.fileno())

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self, tolerate_truncated_tail: bool = False) -> Tuple[List[HistoryEntry], int]:
        """Read every live entry and the last done entry id.

        Returns:
            Tuple of (entries in order, last done entry id)
        """
        contents = self.read_contents(tolerate_truncated_tail)
        return contents.entries, contents.position

    def read_contents(self, tolerate_truncated_tail: bool = False) -> LogContents:
        """Read the starting grid, every live entry and the position.

        Args:
            tolerate_truncated_tail: If True, a malformed final record (as
                left by a crash mid-write) is discarded with a warning and
                cut from the file, so later appends follow the last
                complete record.

        Raises:
            ChangeLoadError: If a record cannot be parsed
            HistoryError: If a position refers to an unknown entry
        """
        contents = LogContents()
        if not self.path.exists():
            return contents

        discard_from: Optional[int] = None
        with open(self.path, "rb") as f:
            lines = _CountingLines(f)
            reader = LineReader(lines)
            good_offset = 0
            while True:
                record_line = reader.line_number + 1
                before = replace(contents)
                try:
                    line = reader.readline()
                    if line is None:
                        break
                    if line:
                        record_line = reader.line_number
                        self._read_record(line, reader, contents)
                    if not lines.terminated:
                        raise ChangeLoadError(
                            "Record is missing its line terminator", reader.line_number
                        )
                except (ChangeLoadError, HistoryError) as e:
                    incomplete = isinstance(e, ChangeLoadError) or not lines.terminated
                    if tolerate_truncated_tail and incomplete and reader.readline() is None:
                        logger.warning(
                            f"Discarding incomplete record at line {record_line} "
                            f"of {self.path}: {e}"
                        )
                        contents = before
                        discard_from = good_offset
                        break
                    raise
                good_offset = lines.offset

        if discard_from is not None:
            self._truncate(discard_from)
        return contents

    def _read_record(
        self,
        line: str,
        reader: LineReader,
        contents: LogContents,
    ) -> None:
        name, sep, value = line.partition("=")
        if name == ENTRY_FIELD and sep:
            entry = HistoryEntry.load(value, reader, self.options)
            done, _ = split_at_position(contents.entries, contents.position)
            if any(e.id == entry.id for e in done):
                raise HistoryError(f"Duplicate history entry id {entry.id} in {self.path}")
            contents.entries = done + [entry]
            contents.position = entry.id
            return

        if name == POSITION_FIELD and sep:
            try:
                new_position = int(value)
            except ValueError:
                raise ChangeLoadError(
                    f"Non-numeric position: {value!r}", reader.line_number
                ) from None
            # validates that the id is known
            split_at_position(contents.entries, new_position)
            contents.position = new_position
            return

        if name == INITIAL_FIELD and sep:
            header_line = reader.line_number
            if contents.initial is not None or contents.entries:
                raise ChangeLoadError(
                    "Starting grid record must come first and only once", header_line
                )
            contents.initial = load_change(reader, self.options)
            return

        raise ChangeLoadError(f"Unexpected history record: {line!r}", reader.line_number)
