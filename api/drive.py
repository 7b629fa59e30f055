#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""api/drive.py
FastAPI route streaming a CSV file stored on Google Drive.

GET /drive/{fileId}

The file name must end with an allowed extension (".csv" by default,
case-insensitive). The first request downloads from Drive and streams the
bytes straight to the client while a gzip copy is written to the disk cache;
later requests are served from that copy. Concurrent first requests wait on
the in-flight download instead of starting their own.

Response: text/csv (streamed), 400 for a non-CSV file name or malformed id,
500 on download or lock failures.
"""

from __future__ import annotations
import logging

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

logger = logging.getLogger(__name__)

router = APIRouter()


async def _relay(stream):
    try:
        async for chunk in stream:
            yield chunk
    finally:
        await stream.aclose()


@router.get("/drive/{file_id}")
async def drive_csv(file_id: str, request: Request) -> StreamingResponse:
    downloads = request.app.state.services.downloads
    stream = await downloads.open(file_id)
    # aclose also runs as a background task in case the body is never iterated
    return StreamingResponse(_relay(stream), media_type="text/csv",
                             background=BackgroundTask(stream.aclose))
