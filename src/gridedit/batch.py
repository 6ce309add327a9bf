"""
YAML grid requests: a whole replacement grid described in one document.

Example:
    description: Split names
    columns:
      - first
      - {name: last, format: text}
    rows:
      - [Ada, Lovelace]
      - cells: [Alan, Turing]
        starred: true
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .changes import MassRowColumnChange
from .models import Cell, ColumnMetadata, Row

DEFAULT_DESCRIPTION = "Replace grid"

_COLUMN_KEYS = {"name", "format", "original_name", "recon_config"}
_ROW_KEYS = {"cells", "flagged", "starred"}


class ParseError(Exception):
    """Error parsing a grid request."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        super().__init__(message)


@dataclass
class GridRequest:
    """Parsed replacement grid."""
    columns: List[ColumnMetadata]
    rows: List[Row]
    description: str = DEFAULT_DESCRIPTION
    source_file: Optional[Path] = None

    def to_change(self) -> MassRowColumnChange:
        return MassRowColumnChange(self.columns, self.rows)


def load_grid_request(source: Union[str, Path, Dict[str, Any]]) -> GridRequest:
    """Load a grid request from a YAML file, YAML string or dictionary.

    Raises:
        ParseError: If the input is not a valid grid request
        FileNotFoundError: If the file does not exist
    """
    source_path: Optional[Path] = None

    if isinstance(source, dict):
        data = source
    elif isinstance(source, Path) or (isinstance(source, str) and _is_file_path(source)):
        source_path = Path(source)
        if not source_path.exists():
            raise FileNotFoundError(f"File not found: {source_path}")
        with open(source_path, "r", encoding="utf-8") as f:
            data = _load_yaml(f.read())
    else:
        data = _load_yaml(source)

    return _parse_grid_request(data, source_path)


def _is_file_path(s: str) -> bool:
    """Check if a string looks like a file path."""
    if "\n" in s:
        return False
    if "/" in s or "\\" in s:
        return True
    return s.endswith((".yaml", ".yml"))


def _load_yaml(text: str) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line_num = mark.line + 1 if mark else None
        raise ParseError(f"Invalid YAML: {e}", line=line_num) from e

    if data is None:
        raise ParseError("Empty YAML content")
    if not isinstance(data, dict):
        raise ParseError("YAML root must be a mapping (dictionary)")
    return data


def _parse_grid_request(
    data: Dict[str, Any],
    source_path: Optional[Path] = None,
) -> GridRequest:
    description = data.get("description", DEFAULT_DESCRIPTION)
    if not isinstance(description, str):
        raise ParseError("Field 'description' must be a string")

    columns_data = data.get("columns")
    if columns_data is None:
        raise ParseError("Missing required field: 'columns'")
    if not isinstance(columns_data, list):
        raise ParseError("Field 'columns' must be a list")
    columns = _parse_columns(columns_data)

    rows_data = data.get("rows", [])
    if not isinstance(rows_data, list):
        raise ParseError("Field 'rows' must be a list")
    rows = [_parse_row(i, r, len(columns)) for i, r in enumerate(rows_data)]

    return GridRequest(
        columns=columns,
        rows=rows,
        description=description,
        source_file=source_path,
    )


def _parse_columns(columns_data: List[Any]) -> List[ColumnMetadata]:
    columns = []
    seen = set()

    for i, col in enumerate(columns_data):
        if isinstance(col, str):
            col = {"name": col}
        if not isinstance(col, dict):
            raise ParseError(f"Column #{i + 1} must be a name or a mapping")
        unknown = set(col) - _COLUMN_KEYS
        if unknown:
            raise ParseError(f"Column #{i + 1}: unknown field(s) {sorted(unknown)}")

        name = col.get("name")
        if not isinstance(name, str) or not name:
            raise ParseError(f"Column #{i + 1}: 'name' must be a non-empty string")
        if name in seen:
            raise ParseError(f"Duplicate column name: {name!r}")
        seen.add(name)

        recon_config = col.get("recon_config")
        if recon_config is not None and not isinstance(recon_config, dict):
            raise ParseError(f"Column {name!r}: 'recon_config' must be a mapping")

        columns.append(
            ColumnMetadata(
                name=name,
                cell_index=i,
                original_name=col.get("original_name"),
                format=str(col.get("format", "default")),
                recon_config=recon_config,
            )
        )

    return columns


def _parse_row(index: int, row_data: Any, width: int) -> Row:
    flagged = starred = False
    if isinstance(row_data, dict):
        unknown = set(row_data) - _ROW_KEYS
        if unknown:
            raise ParseError(f"Row #{index + 1}: unknown field(s) {sorted(unknown)}")
        flagged = bool(row_data.get("flagged", False))
        starred = bool(row_data.get("starred", False))
        row_data = row_data.get("cells", [])

    if not isinstance(row_data, list):
        raise ParseError(f"Row #{index + 1} must be a list of cell values")
    if len(row_data) > width:
        raise ParseError(
            f"Row #{index + 1} has {len(row_data)} cells but there are only {width} columns"
        )

    cells = tuple(_parse_cell(index, value) for value in row_data)
    return Row(cells=cells, flagged=flagged, starred=starred)


def _parse_cell(index: int, value: Any) -> Optional[Cell]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return Cell(value)
    if isinstance(value, date):
        # YAML reads bare dates as datetime.date
        return Cell(datetime(value.year, value.month, value.day))
    if isinstance(value, (str, int, float, bool)):
        return Cell(value)
    raise ParseError(
        f"Row #{index + 1}: unsupported cell value {value!r} "
        f"(expected a string, number, boolean, date or null)"
    )
