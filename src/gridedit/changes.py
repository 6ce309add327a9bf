"""Reversible structural changes and their line-oriented serialization.

A change owns its *new* state from construction and captures the project's
*old* state the first time it is applied. Once both halves exist the change
can be written to a history log and read back; a loaded change already
carries both halves, so replaying it never recaptures anything.

Record layout, one ``name=value`` header per field in any order, terminated
by the end-of-change sentinel::

    newColumnCount=1
    {"name":"colA","cellIndex":0}
    oldColumnCount=0
    newRowCount=0
    oldRowCount=0
    /ec/
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, ClassVar, TextIO, TypeVar

from gridedit.exceptions import ChangeLoadError, ChangeStateError
from gridedit.models import ColumnMetadata, Row
from gridedit.project import Project

logger = logging.getLogger(__name__)

END_OF_CHANGE = "/ec/"
CHANGE_FIELD = "change"

# Names that open a history log record; a change body never contains them
RECORD_HEADERS = frozenset({CHANGE_FIELD, "entry", "initial", "position"})

_C = TypeVar("_C", bound=type["Change"])

_CHANGE_TYPES: dict[str, type[Change]] = {}


# ---------------------------------------------------------------------------
# Line reading
# ---------------------------------------------------------------------------

class LineReader:
    """Reads one line at a time from a text stream and counts lines.

    Only ever consumes the lines it returns, so a stream can be handed back
    and forth between loaders without losing its position.
    """

    def __init__(self, source: TextIO | Iterable[str]) -> None:
        self._readline: Callable[[], str] | None = getattr(source, "readline", None)
        self._lines: Iterator[str] | None = None if self._readline else iter(source)
        self.line_number = 0

    @classmethod
    def wrap(cls, source: LineReader | TextIO | Iterable[str]) -> LineReader:
        return source if isinstance(source, LineReader) else cls(source)

    def readline(self) -> str | None:
        """Next line without its terminator, or ``None`` at end of stream."""
        if self._readline is not None:
            line = self._readline()
            if line == "":
                return None
        else:
            line = next(self._lines, None)
            if line is None:
                return None
        self.line_number += 1
        return line.rstrip("\r\n")


# ---------------------------------------------------------------------------
# Change contract and variant registry
# ---------------------------------------------------------------------------

class Change(ABC):
    """A reversible edit of one project."""

    change_type: ClassVar[str] = ""

    @abstractmethod
    def apply(self, project: Project) -> None:
        """Move ``project`` to this change's new state."""

    @abstractmethod
    def revert(self, project: Project) -> None:
        """Move ``project`` back to the state captured by :meth:`apply`."""

    @abstractmethod
    def save(self, writer: TextIO, options: Mapping[str, Any] | None = None) -> None:
        """Write this change's record, including the end-of-change sentinel."""

    @classmethod
    @abstractmethod
    def load(
        cls,
        reader: LineReader | TextIO | Iterable[str],
        options: Mapping[str, Any] | None = None,
    ) -> Change:
        """Read one record written by :meth:`save`."""


def register_change(change_type: str) -> Callable[[_C], _C]:
    """Class decorator: make a variant loadable under ``change_type``."""

    def decorator(cls: _C) -> _C:
        if change_type in _CHANGE_TYPES and _CHANGE_TYPES[change_type] is not cls:
            raise ValueError(f"Change type already registered: {change_type!r}")
        cls.change_type = change_type
        _CHANGE_TYPES[change_type] = cls
        return cls

    return decorator


def get_change_class(change_type: str) -> type[Change] | None:
    return _CHANGE_TYPES.get(change_type)


def save_change(
    change: Change,
    writer: TextIO,
    options: Mapping[str, Any] | None = None,
) -> None:
    """Write the variant discriminator followed by the change record."""
    if not change.change_type:
        raise ChangeStateError(f"{type(change).__name__} is not a registered change type")
    writer.write(f"{CHANGE_FIELD}={change.change_type}\n")
    change.save(writer, options)


def load_change(
    reader: LineReader | TextIO | Iterable[str],
    options: Mapping[str, Any] | None = None,
) -> Change:
    """Read a discriminator line and dispatch to the matching variant."""
    reader = LineReader.wrap(reader)
    line = reader.readline()
    if line is None:
        raise ChangeLoadError("Expected a change record, got end of stream", reader.line_number)
    name, sep, change_type = line.partition("=")
    if name != CHANGE_FIELD or not sep:
        raise ChangeLoadError(f"Expected '{CHANGE_FIELD}=<type>', got {line!r}", reader.line_number)
    cls = _CHANGE_TYPES.get(change_type)
    if cls is None:
        raise ChangeLoadError(f"Unknown change type: {change_type!r}", reader.line_number)
    return cls.load(reader, options)


# ---------------------------------------------------------------------------
# Full-grid replacement
# ---------------------------------------------------------------------------

_NEW_COLUMNS = "newColumnCount"
_OLD_COLUMNS = "oldColumnCount"
_NEW_ROWS = "newRowCount"
_OLD_ROWS = "oldRowCount"


@register_change("MassRowColumnChange")
class MassRowColumnChange(Change):
    """Replace a project's whole column list and row list in one step.

    Column and row shapes are not checked against each other; callers that
    build the new grid are responsible for its consistency.
    """

    def __init__(
        self,
        new_columns: Iterable[ColumnMetadata],
        new_rows: Iterable[Row],
    ) -> None:
        self._new_columns = tuple(new_columns)
        self._new_rows = tuple(new_rows)
        self._old_columns: tuple[ColumnMetadata, ...] | None = None
        self._old_rows: tuple[Row, ...] | None = None

    def __repr__(self) -> str:
        return (
            f"MassRowColumnChange(new_columns={len(self._new_columns)}, "
            f"new_rows={len(self._new_rows)}, captured={self.is_captured})"
        )

    @property
    def new_columns(self) -> tuple[ColumnMetadata, ...]:
        return self._new_columns

    @property
    def new_rows(self) -> tuple[Row, ...]:
        return self._new_rows

    @property
    def old_columns(self) -> tuple[ColumnMetadata, ...] | None:
        return self._old_columns

    @property
    def old_rows(self) -> tuple[Row, ...] | None:
        return self._old_rows

    @property
    def is_captured(self) -> bool:
        return self._old_columns is not None and self._old_rows is not None

    def apply(self, project: Project) -> None:
        with project.lock:
            # grid records are immutable, so copying the containers is enough
            if self._old_columns is None:
                self._old_columns = tuple(project.columns)
            if self._old_rows is None:
                self._old_rows = tuple(project.rows)
            self._replace(project, self._new_columns, self._new_rows)
        logger.debug(
            f"Applied grid replacement to project {project.id!r}: "
            f"{len(self._new_columns)} column(s), {len(self._new_rows)} row(s)"
        )

    def revert(self, project: Project) -> None:
        if not self.is_captured:
            raise ChangeStateError(
                "Cannot revert a change whose old state was never captured"
            )
        with project.lock:
            self._replace(project, self._old_columns, self._old_rows)
        logger.debug(f"Reverted grid replacement on project {project.id!r}")

    @staticmethod
    def _replace(
        project: Project,
        columns: tuple[ColumnMetadata, ...],
        rows: tuple[Row, ...],
    ) -> None:
        project.columns[:] = columns
        project.rows[:] = rows
        project.inter_project_model.flush_joins_involving_project(project.id)
        project.update()

    def save(self, writer: TextIO, options: Mapping[str, Any] | None = None) -> None:
        if not self.is_captured:
            raise ChangeStateError(
                "Cannot save a change before its old state has been captured"
            )
        _write_records(writer, _NEW_COLUMNS, [c.save() for c in self._new_columns])
        _write_records(writer, _OLD_COLUMNS, [c.save() for c in self._old_columns])
        _write_records(writer, _NEW_ROWS, [r.save(options) for r in self._new_rows])
        _write_records(writer, _OLD_ROWS, [r.save(options) for r in self._old_rows])
        writer.write(END_OF_CHANGE + "\n")

    @classmethod
    def load(
        cls,
        reader: LineReader | TextIO | Iterable[str],
        options: Mapping[str, Any] | None = None,
    ) -> MassRowColumnChange:
        reader = LineReader.wrap(reader)
        parsers: dict[str, Callable[[str], Any]] = {
            _NEW_COLUMNS: ColumnMetadata.load,
            _OLD_COLUMNS: ColumnMetadata.load,
            _NEW_ROWS: lambda line: Row.load(line, options),
            _OLD_ROWS: lambda line: Row.load(line, options),
        }
        fields: dict[str, list] = {}

        while True:
            line = reader.readline()
            if line is None:
                raise ChangeLoadError(
                    f"Change record ended without '{END_OF_CHANGE}'", reader.line_number
                )
            if line == END_OF_CHANGE:
                break
            name, sep, value = line.partition("=")
            if not sep:
                raise ChangeLoadError(f"Expected 'field=value', got {line!r}", reader.line_number)
            if name in RECORD_HEADERS:
                raise ChangeLoadError(
                    f"Change record interrupted by {line!r}", reader.line_number
                )
            parse = parsers.get(name)
            if parse is None:
                logger.warning(f"Skipping unknown change field {name!r} at line {reader.line_number}")
                continue
            fields[name] = _read_records(reader, name, value, parse)

        change = cls(fields.get(_NEW_COLUMNS, ()), fields.get(_NEW_ROWS, ()))
        if _OLD_COLUMNS in fields:
            change._old_columns = tuple(fields[_OLD_COLUMNS])
        if _OLD_ROWS in fields:
            change._old_rows = tuple(fields[_OLD_ROWS])
        return change


def _write_records(writer: TextIO, name: str, lines: list[str]) -> None:
    writer.write(f"{name}={len(lines)}\n")
    for line in lines:
        writer.write(line)
        writer.write("\n")


def _read_records(
    reader: LineReader,
    name: str,
    value: str,
    parse: Callable[[str], Any],
) -> list:
    try:
        count = int(value)
    except ValueError:
        raise ChangeLoadError(f"Non-numeric {name}: {value!r}", reader.line_number) from None
    if count < 0:
        raise ChangeLoadError(f"Negative {name}: {count}", reader.line_number)

    records = []
    for _ in range(count):
        line = reader.readline()
        if line is None or line == END_OF_CHANGE:
            raise ChangeLoadError(
                f"Expected {count} record(s) after {name}, got {len(records)}",
                reader.line_number,
            )
        try:
            records.append(parse(line))
        except (ValueError, TypeError, KeyError) as e:
            raise ChangeLoadError(f"Bad record after {name}: {e}", reader.line_number) from e
    return records
