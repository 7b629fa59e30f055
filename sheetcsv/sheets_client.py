# sheetcsv/sheets_client.py
# Google Sheets API v4 over aiohttp. Returns rows exactly as the API gives
# them: ragged, trailing empty cells already stripped by Google.
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from sheetcsv.errors import InvalidTabIndex, UpstreamError

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"


def a1_range(tab_name: str) -> str:
    """Whole-tab A1 range. Quoted so names with spaces or '!' still resolve."""
    return "'" + tab_name.replace("'", "''") + "'"


async def api_error_message(resp: aiohttp.ClientResponse) -> str:
    try:
        body = await resp.json(content_type=None)
        return str(body.get("error", {}).get("message") or body)
    except Exception:
        return (await resp.text())[:500]


class SheetsClient:
    def __init__(self, session: aiohttp.ClientSession, auth, timeout_s: float = 60.0,
                 base_url: str = SHEETS_API):
        self.session = session
        self.auth = auth
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self.base_url = base_url.rstrip("/")

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        headers = await self.auth.headers()
        try:
            async with self.session.get(url, params=params, headers=headers, timeout=self.timeout) as resp:
                if resp.status >= 400:
                    msg = await api_error_message(resp)
                    raise UpstreamError(f"Sheets API error {resp.status}: {msg}", remote_status=resp.status)
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Sheets API request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("Sheets API request timed out") from e

    async def fetch_by_name(self, spreadsheet_id: str, tab_name: str) -> List[List[Any]]:
        logger.info('Fetching data for sheet "%s" in spreadsheet "%s"...', tab_name, spreadsheet_id)
        url = f"{self.base_url}/{quote(spreadsheet_id, safe='')}/values/{quote(a1_range(tab_name), safe='')}"
        data = await self._get_json(url)
        rows = data.get("values") or []
        logger.info('Fetched %d rows for sheet "%s".', len(rows), tab_name)
        return rows

    async def list_tab_names(self, spreadsheet_id: str) -> List[str]:
        url = f"{self.base_url}/{quote(spreadsheet_id, safe='')}"
        data = await self._get_json(url, params={"fields": "sheets.properties.title"})
        return [s.get("properties", {}).get("title", "") for s in data.get("sheets") or []]

    async def fetch_by_index(self, spreadsheet_id: str, tab_index: int) -> List[List[Any]]:
        logger.info('Fetching spreadsheet metadata for "%s" to use tab index %d...', spreadsheet_id, tab_index)
        names = await self.list_tab_names(spreadsheet_id)
        if tab_index < 0 or tab_index >= len(names):
            raise InvalidTabIndex(tab_index, len(names))
        name = names[tab_index]
        logger.info('Using sheet "%s" (tab index %d).', name, tab_index)
        return await self.fetch_by_name(spreadsheet_id, name)
