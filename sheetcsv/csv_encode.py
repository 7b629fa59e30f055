# sheetcsv/csv_encode.py
# Minimal RFC-4180 style writer. Only '"', ',' and '\n' trigger quoting;
# whitespace is never quoted.
from __future__ import annotations
import math
from typing import Any, Iterable, List, Sequence

_QUOTE_TRIGGERS = ('"', ",", "\n")


def encode_cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    cell = value if isinstance(value, str) else str(value)
    cell = cell.replace("\r\n", "\n").replace("\r", "\n")
    cell = cell.replace('"', '""')
    if any(ch in cell for ch in _QUOTE_TRIGGERS):
        return f'"{cell}"'
    return cell


def to_csv_line(row: Sequence[Any]) -> str:
    return ",".join(encode_cell(v) for v in row)


def encode_grid(rows: Iterable[Sequence[Any]]) -> str:
    """Rows joined by a single LF, no trailing newline."""
    lines: List[str] = [to_csv_line(r) for r in rows]
    return "\n".join(lines)
