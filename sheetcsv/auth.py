# sheetcsv/auth.py
# One service-account credential for the whole process, loaded at startup.
from __future__ import annotations
import asyncio
import json
import logging
from typing import Dict, Sequence

import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from sheetcsv.errors import StartupFatal, UpstreamError

logger = logging.getLogger(__name__)


def load_credentials(path: str, scopes: Sequence[str]) -> service_account.Credentials:
    """Read a service-account JSON key. Any failure is fatal for startup."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            info = json.load(f)
        return service_account.Credentials.from_service_account_info(info, scopes=list(scopes))
    except (OSError, ValueError, KeyError) as e:
        # json.JSONDecodeError and google-auth's malformed-key errors are ValueErrors
        logger.error("Error reading credentials from %s: %s", path, e)
        raise StartupFatal(f"Error reading credentials from {path}: {e}") from e


class GoogleAuth:
    """Hands out bearer headers, refreshing the token off the event loop."""

    def __init__(self, credentials: service_account.Credentials):
        self.credentials = credentials
        self._lock = asyncio.Lock()

    @classmethod
    def from_file(cls, path: str, scopes: Sequence[str]) -> "GoogleAuth":
        return cls(load_credentials(path, scopes))

    async def headers(self) -> Dict[str, str]:
        if not self.credentials.valid:
            async with self._lock:
                if not self.credentials.valid:
                    await self._refresh()
        return {"Authorization": f"Bearer {self.credentials.token}"}

    async def _refresh(self) -> None:
        logger.info("Refreshing Google access token")
        request = google.auth.transport.requests.Request()
        try:
            await asyncio.to_thread(self.credentials.refresh, request)
        except google.auth.exceptions.GoogleAuthError as e:
            raise UpstreamError(f"Error obtaining Google access token: {e}") from e
