"""
Tests for the column normalizer (header-row and raw policies).
"""

import pytest

from sheetcsv.errors import HeaderRowOutOfRange
from sheetcsv.normalize import column_label, normalize, normalize_header_rows, normalize_raw


def _rectangular(grid):
    return len({len(r) for r in grid}) <= 1


class TestColumnLabel:
    @pytest.mark.parametrize("n,label", [(0, "A"), (1, "B"), (25, "Z"), (26, "AA"), (27, "AB"),
                                         (51, "AZ"), (52, "BA"), (701, "ZZ"), (702, "AAA")])
    def test_bijective_base26(self, n, label):
        assert column_label(n) == label

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            column_label(-1)


class TestRawMode:
    def test_generated_header_and_padding(self):
        grid = normalize_raw([["a", "b", "c"], ["x"]])
        assert grid == [["A", "B", "C"], ["a", "b", "c"], ["x", "", ""]]

    def test_empty_input_has_no_header(self):
        assert normalize_raw([]) == []

    def test_none_cells_become_empty(self):
        assert normalize_raw([[None, "b"]]) == [["A", "B"], ["", "b"]]

    def test_wide_row_in_the_middle(self):
        rows = [["a"], ["b"] * 28, []]
        grid = normalize(rows, raw=True)
        assert grid[0][-2:] == ["AA", "AB"]
        assert len(grid) == 4
        assert _rectangular(grid)


class TestHeaderRowMode:
    def test_header_row_two_discards_and_truncates(self):
        rows = [["junk"], ["h1", "h2"], ["v1", "v2", "v3"]]
        assert normalize_header_rows(rows, header_row=2) == [["h1", "h2"], ["v1", "v2"]]

    def test_short_rows_padded(self):
        rows = [["name", "qty"], ["apple", "3"], ["pear"]]
        assert normalize_header_rows(rows) == [["name", "qty"], ["apple", "3"], ["pear", ""]]

    def test_null_headers_suppressed(self):
        rows = [["h1", "", "h2", "#N/A"], ["a", "b", "c", "d"]]
        assert normalize_header_rows(rows) == [["h1", "h2"], ["a", "c"]]

    def test_ref_error_header_suppressed(self):
        rows = [["#REF!", "ok"], ["x", "y"]]
        assert normalize_header_rows(rows) == [["ok"], ["y"]]

    def test_nullable_headers_kept_when_allowed(self):
        rows = [["h1", "", "h2", "#N/A"], ["a", "b", "c", "d"]]
        assert normalize_header_rows(rows, allow_nullable_headers=True) == rows

    def test_header_row_out_of_range(self):
        with pytest.raises(HeaderRowOutOfRange) as exc:
            normalize_header_rows([["a"], ["b"]], header_row=3)
        assert "1..2" in str(exc.value)
        assert exc.value.status_code == 400

    def test_header_row_zero_out_of_range(self):
        with pytest.raises(HeaderRowOutOfRange):
            normalize_header_rows([["a"]], header_row=0)

    def test_empty_input(self):
        assert normalize_header_rows([], header_row=5) == []

    def test_last_row_as_header(self):
        assert normalize_header_rows([["x"], ["a", "b"]], header_row=2) == [["a", "b"]]

    def test_output_is_rectangular(self):
        rows = [["a", "b", "c"], [], ["1"], ["1", "2", "3", "4", "5"], [None, None, "z"]]
        grid = normalize(rows, header_row=1)
        assert _rectangular(grid)
        assert grid[-1] == ["", "", "z"]
