# sheetcsv/normalize.py
# Ragged rows -> rectangular grid.
#
# Two policies:
#   - header-row mode: rows above `header_row` are dropped, the header row fixes
#     the width, optionally columns with a null header are removed.
#   - raw mode: nothing dropped, width = widest row, synthetic A, B, C... header.
#
# pandas does the padding: a DataFrame built from ragged lists fills the short
# rows with None up to the widest row.
from __future__ import annotations
from typing import Any, List, Optional, Sequence
import pandas as pd

from sheetcsv.errors import HeaderRowOutOfRange

NULL_HEADERS = ("", "#N/A", "#REF!")

Row = Sequence[Optional[Any]]
Grid = List[List[Any]]


def column_label(n: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA (bijective base 26)."""
    if n < 0:
        raise ValueError(f"column index must be >= 0, got {n}")
    out = ""
    n += 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        out = chr(ord("A") + rem) + out
    return out


def _frame(rows: Sequence[Row]) -> pd.DataFrame:
    return pd.DataFrame([list(r) for r in rows], dtype=object)


def _to_grid(df: pd.DataFrame) -> Grid:
    # to_numpy keeps zero-width rows; itertuples would drop them
    return df.fillna("").to_numpy(dtype=object).tolist()


def normalize_header_rows(rows: Sequence[Row], header_row: int = 1,
                          allow_nullable_headers: bool = False) -> Grid:
    if not rows:
        return []
    if header_row < 1 or header_row > len(rows):
        raise HeaderRowOutOfRange(header_row, len(rows))

    sliced = rows[header_row - 1:]
    width = len(sliced[0])
    df = _frame(sliced).reindex(columns=range(width))

    if not allow_nullable_headers:
        header = df.iloc[0].fillna("")
        df = df.loc[:, ~header.isin(NULL_HEADERS).to_numpy()]

    return _to_grid(df)


def normalize_raw(rows: Sequence[Row]) -> Grid:
    if not rows:
        return []
    df = _frame(rows)
    header = [column_label(i) for i in range(df.shape[1])]
    return [header] + _to_grid(df)


def normalize(rows: Sequence[Row], *, raw: bool = False, header_row: int = 1,
              allow_nullable_headers: bool = False) -> Grid:
    if raw:
        return normalize_raw(rows)
    return normalize_header_rows(rows, header_row, allow_nullable_headers)
