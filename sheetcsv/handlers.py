# sheetcsv/handlers.py
# Request pipeline for the tab route: parse -> cache / fetch -> normalize -> encode.
# Framework-free so it can be driven directly from tests.
from __future__ import annotations
import logging
from typing import Any, List, Mapping, Optional

from sheetcsv.cache import RequestKey, ResultCache
from sheetcsv.csv_encode import encode_grid
from sheetcsv.errors import ClientError, InvalidParameter, MissingParameter
from sheetcsv.normalize import normalize

logger = logging.getLogger(__name__)


def _flag(query: Mapping[str, str], name: str) -> bool:
    return query.get(name) == "1"


def _parse_header_row(value: Optional[str]) -> int:
    if value is None or value == "":
        return 1
    try:
        n = int(value.strip())
    except ValueError:
        raise InvalidParameter("headerRow", value)
    if n < 1:
        raise InvalidParameter("headerRow", value)
    return n


def parse_tab_request(resource_id: Optional[str], tab: Optional[str],
                      query: Mapping[str, str]) -> RequestKey:
    """Validate path/query parameters into a cache key. Raises ClientError."""
    if not resource_id or not resource_id.strip() or not tab or not tab.strip():
        logger.error("Missing spreadsheetId or sheetParam in the URL path.")
        raise MissingParameter("Missing spreadsheetId or sheetParam.")

    raw = _flag(query, "raw")
    use_tab_index = _flag(query, "useTabIndex")
    header_row = 1 if raw else _parse_header_row(query.get("headerRow"))
    if use_tab_index:
        try:
            int(tab)
        except ValueError:
            logger.error("Invalid tab index: %s", tab)
            raise ClientError(f"Invalid tab index: {tab}")

    return RequestKey.build(
        resource_id, tab,
        use_tab_index=use_tab_index,
        raw=raw,
        header_row=header_row,
        # query name keeps the historical spelling
        allow_nullable_headers=_flag(query, "allowNulableHeaders"),
    )


class TabService:
    """Serves one spreadsheet tab as CSV through the short-lived result cache."""

    def __init__(self, sheets, cache: ResultCache):
        self.sheets = sheets
        self.cache = cache

    async def fetch_rows(self, key: RequestKey) -> List[List[Any]]:
        if key.use_tab_index:
            return await self.sheets.fetch_by_index(key.resource_id, int(key.tab))
        return await self.sheets.fetch_by_name(key.resource_id, key.tab)

    async def render(self, key: RequestKey) -> str:
        rows = await self.cache.get_or_fetch(key, lambda: self.fetch_rows(key))
        if not rows:
            logger.info("No data found for this sheet.")
            return ""
        grid = normalize(
            rows,
            raw=key.raw,
            header_row=key.header_row or 1,
            allow_nullable_headers=key.allow_nullable_headers,
        )
        if key.raw:
            logger.info("Sending raw CSV with %d rows (generated header with %d columns).",
                        len(grid), len(grid[0]) if grid else 0)
        else:
            logger.info("Sending CSV with %d rows (row #%d as header, colCount=%d).",
                        len(grid), key.header_row, len(grid[0]) if grid else 0)
        return encode_grid(grid)

    async def handle(self, resource_id: Optional[str], tab: Optional[str],
                     query: Mapping[str, str]) -> str:
        return await self.render(parse_tab_request(resource_id, tab, query))
