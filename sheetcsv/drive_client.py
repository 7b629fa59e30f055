# sheetcsv/drive_client.py
# Google Drive API v3 over aiohttp: file metadata and the raw content stream.
from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator
from urllib.parse import quote

import aiohttp

from sheetcsv.errors import UpstreamError
from sheetcsv.sheets_client import api_error_message

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3/files"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DriveFileMeta:
    name: str
    mime_type: str = ""


class DriveClient:
    def __init__(self, session: aiohttp.ClientSession, auth, timeout_s: float = 60.0,
                 base_url: str = DRIVE_API, chunk_size: int = CHUNK_SIZE):
        self.session = session
        self.auth = auth
        self.meta_timeout = aiohttp.ClientTimeout(total=timeout_s)
        # no total bound on a large download, only on each read
        self.media_timeout = aiohttp.ClientTimeout(total=None, sock_connect=timeout_s, sock_read=timeout_s)
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size

    def _url(self, file_id: str) -> str:
        return f"{self.base_url}/{quote(file_id, safe='')}"

    async def get_metadata(self, file_id: str) -> DriveFileMeta:
        headers = await self.auth.headers()
        params = {"fields": "name,mimeType", "supportsAllDrives": "true"}
        try:
            async with self.session.get(self._url(file_id), params=params, headers=headers,
                                        timeout=self.meta_timeout) as resp:
                if resp.status >= 400:
                    msg = await api_error_message(resp)
                    raise UpstreamError(f"Drive API error {resp.status}: {msg}", remote_status=resp.status)
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Drive metadata request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("Drive metadata request timed out") from e
        return DriveFileMeta(name=data.get("name") or "", mime_type=data.get("mimeType") or "")

    @asynccontextmanager
    async def open_media(self, file_id: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """Yield an async iterator over the file's bytes; the connection closes on exit."""
        headers = await self.auth.headers()
        params = {"alt": "media", "supportsAllDrives": "true"}
        try:
            resp = await self.session.get(self._url(file_id), params=params, headers=headers,
                                          timeout=self.media_timeout)
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Drive download request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("Drive download request timed out") from e
        try:
            if resp.status >= 400:
                msg = await api_error_message(resp)
                raise UpstreamError(f"Drive API error {resp.status}: {msg}", remote_status=resp.status)
            yield self._iter_body(resp)
        finally:
            resp.release()

    async def _iter_body(self, resp: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.content.iter_chunked(self.chunk_size):
                yield chunk
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Error downloading file from Drive: {e}") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("Drive download stalled") from e
