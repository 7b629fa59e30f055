"""
Shared fixtures: in-memory stand-ins for the Google Sheets and Drive clients.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Sequence

import pytest

from sheetcsv.drive_client import DriveFileMeta
from sheetcsv.errors import InvalidTabIndex, UpstreamError


class FakeSheets:
    """Duck-typed SheetsClient backed by a dict of tab name -> rows."""

    def __init__(self, tabs: Dict[str, List[list]], fail: Optional[Exception] = None, delay: float = 0.0):
        self.tabs = tabs
        self.fail = fail
        self.delay = delay
        self.calls: List[tuple] = []

    async def fetch_by_name(self, spreadsheet_id: str, tab_name: str):
        self.calls.append(("name", spreadsheet_id, tab_name))
        await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        if tab_name not in self.tabs:
            raise UpstreamError(f"Sheets API error 400: Unable to parse range: {tab_name}", remote_status=400)
        return self.tabs[tab_name]

    async def fetch_by_index(self, spreadsheet_id: str, tab_index: int):
        names = list(self.tabs)
        if tab_index < 0 or tab_index >= len(names):
            raise InvalidTabIndex(tab_index, len(names))
        return await self.fetch_by_name(spreadsheet_id, names[tab_index])


class FakeDrive:
    """Duck-typed DriveClient serving fixed chunks, optionally failing mid-stream."""

    def __init__(self, name: str = "data.csv", chunks: Sequence[bytes] = (b"a,b\n", b"1,2"),
                 delay: float = 0.0, fail_at: Optional[int] = None,
                 meta_error: Optional[Exception] = None):
        self.name = name
        self.chunks = list(chunks)
        self.delay = delay
        self.fail_at = fail_at
        self.meta_error = meta_error
        self.meta_calls = 0
        self.media_calls = 0

    async def get_metadata(self, file_id: str) -> DriveFileMeta:
        self.meta_calls += 1
        await asyncio.sleep(0)
        if self.meta_error is not None:
            raise self.meta_error
        return DriveFileMeta(name=self.name, mime_type="text/csv")

    @asynccontextmanager
    async def open_media(self, file_id: str):
        self.media_calls += 1
        yield self._iter()

    async def _iter(self):
        for i, chunk in enumerate(self.chunks):
            await asyncio.sleep(self.delay)
            if self.fail_at is not None and i >= self.fail_at:
                raise UpstreamError("Error downloading file from Drive: connection reset")
            yield chunk

    @property
    def content(self) -> bytes:
        return b"".join(self.chunks)


async def read_all(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])


@pytest.fixture
def sample_tabs():
    return {
        "Sheet1": [["name", "qty"], ["apple", "3"], ["pear"]],
        "Junk": [["junk"], ["h1", "h2"], ["v1", "v2", "v3"]],
        "Empty": [],
    }


@pytest.fixture
def fake_sheets(sample_tabs):
    return FakeSheets(sample_tabs)


@pytest.fixture
def fake_drive():
    return FakeDrive(chunks=[b"h1,h2\n", b"1,2\n", b"3,4"])
