"""Grid record dataclasses and their single-line codecs for gridedit."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

CellValue = Union[str, int, float, bool, datetime, None]

_DATE_TAG = "date"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Judgment(str, Enum):
    """Reconciliation judgment attached to a cell."""

    NONE = "none"
    MATCHED = "matched"
    NEW = "new"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Recon:
    """Reconciliation annotation linking a cell value to an external entity."""

    id: int
    judgment: Judgment = Judgment.NONE
    match_id: str | None = None
    match_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "j": self.judgment.value}
        if self.match_id is not None:
            data["m"] = self.match_id
        if self.match_name is not None:
            data["n"] = self.match_name
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Recon:
        return cls(
            id=data["id"],
            judgment=Judgment(data.get("j", Judgment.NONE.value)),
            match_id=data.get("m"),
            match_name=data.get("n"),
        )


@dataclass(frozen=True, slots=True)
class Cell:
    """A single value slot in a row. Replaced wholesale, never mutated."""

    value: CellValue
    recon: Recon | None = None

    def to_dict(self, omit_recon: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"v": _encode_value(self.value)}
        if self.recon is not None and not omit_recon:
            data["r"] = self.recon.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Cell:
        recon = data.get("r")
        return cls(
            value=_decode_value(data.get("v")),
            recon=Recon.from_dict(recon) if recon is not None else None,
        )


@dataclass(frozen=True, slots=True)
class Row:
    """An ordered sequence of cells, indexed by column cell index.

    Rows captured before a schema change keep their original length, so a
    cell index past the end simply reads as an empty cell.
    """

    cells: tuple[Cell | None, ...] = ()
    flagged: bool = False
    starred: bool = False

    @classmethod
    def of(cls, *values: CellValue, flagged: bool = False, starred: bool = False) -> Row:
        """Build a row from plain values; ``None`` leaves the slot empty."""
        return cls(
            cells=tuple(None if v is None else Cell(v) for v in values),
            flagged=flagged,
            starred=starred,
        )

    def get_cell(self, cell_index: int) -> Cell | None:
        if 0 <= cell_index < len(self.cells):
            return self.cells[cell_index]
        return None

    def get_cell_value(self, cell_index: int) -> CellValue:
        cell = self.get_cell(cell_index)
        return cell.value if cell is not None else None

    def values(self) -> list[CellValue]:
        return [c.value if c is not None else None for c in self.cells]

    def save(self, options: Mapping[str, Any] | None = None) -> str:
        """Serialize to one line of JSON.

        Recognized options: ``omit_recons`` drops reconciliation data.
        """
        omit = bool(options and options.get("omit_recons"))
        data: dict[str, Any] = {
            "cells": [None if c is None else c.to_dict(omit) for c in self.cells],
        }
        if self.flagged:
            data["flagged"] = True
        if self.starred:
            data["starred"] = True
        return _dump_line(data)

    @classmethod
    def load(cls, line: str, options: Mapping[str, Any] | None = None) -> Row:
        data = _load_line(line, "row")
        cells = data.get("cells", [])
        if not isinstance(cells, list):
            raise ValueError("Row record field 'cells' must be a list")
        if any(c is not None and not isinstance(c, dict) for c in cells):
            raise ValueError("Row record cells must be objects or null")
        return cls(
            cells=tuple(None if c is None else Cell.from_dict(c) for c in cells),
            flagged=bool(data.get("flagged", False)),
            starred=bool(data.get("starred", False)),
        )


@dataclass(frozen=True, slots=True)
class ColumnMetadata:
    """Schema entry: a named column pointing at a stable cell index."""

    name: str
    cell_index: int
    original_name: str | None = None
    format: str = "default"
    recon_config: dict[str, Any] | None = field(default=None)

    def save(self) -> str:
        """Serialize to one line of JSON."""
        data: dict[str, Any] = {"name": self.name, "cellIndex": self.cell_index}
        if self.original_name is not None and self.original_name != self.name:
            data["originalName"] = self.original_name
        if self.format != "default":
            data["format"] = self.format
        if self.recon_config is not None:
            data["reconConfig"] = self.recon_config
        return _dump_line(data)

    @classmethod
    def load(cls, line: str) -> ColumnMetadata:
        data = _load_line(line, "column")
        try:
            return cls(
                name=data["name"],
                cell_index=int(data["cellIndex"]),
                original_name=data.get("originalName"),
                format=data.get("format", "default"),
                recon_config=data.get("reconConfig"),
            )
        except KeyError as e:
            raise ValueError(f"Column record is missing field {e.args[0]!r}") from e


def columns_from_names(names: Iterable[str]) -> list[ColumnMetadata]:
    """Build a column list whose cell indices follow the given order."""
    return [ColumnMetadata(name=n, cell_index=i) for i, n in enumerate(names)]


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def _encode_value(value: CellValue) -> Any:
    if isinstance(value, datetime):
        return {"t": _DATE_TAG, "v": value.isoformat()}
    return value


def _decode_value(data: Any) -> CellValue:
    if isinstance(data, dict):
        if data.get("t") == _DATE_TAG:
            return datetime.fromisoformat(data["v"])
        raise ValueError(f"Unsupported tagged cell value: {data!r}")
    return data


def _dump_line(data: dict[str, Any]) -> str:
    # json.dumps escapes control characters, so the result never spans lines
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _load_line(line: str, kind: str) -> dict[str, Any]:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed {kind} record: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Malformed {kind} record: expected a JSON object")
    return data
