# api/index.py
"""FastAPI application: wires the shared Google client, caches and routers.

Run with `python -m sheetcsv.server` or `uvicorn api.index:app`.
"""
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from sheetcsv.auth import GoogleAuth
from sheetcsv.cache import ResultCache
from sheetcsv.disk_cache import DownloadCoordinator
from sheetcsv.drive_client import DriveClient
from sheetcsv.errors import SheetCsvError
from sheetcsv.handlers import TabService
from sheetcsv.log import setup_logging
from sheetcsv.settings import Settings
from sheetcsv.sheets_client import SheetsClient

from api import drive, sheets

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_S = 10.0


@dataclass
class Services:
    tabs: Any
    downloads: Any


def build_services(settings: Settings, auth: GoogleAuth, session: aiohttp.ClientSession) -> Services:
    sheets_client = SheetsClient(session, auth, timeout_s=settings.fetch_timeout_s)
    drive_client = DriveClient(session, auth, timeout_s=settings.fetch_timeout_s)
    return Services(
        tabs=TabService(sheets_client, ResultCache(ttl_seconds=settings.cache_ttl_s)),
        downloads=DownloadCoordinator(
            drive_client,
            settings.cache_dir,
            extensions=settings.drive_extensions,
            stale_after_s=settings.lock_stale_after_s,
            poll_interval_s=settings.lock_poll_interval_s,
            wait_timeout_s=settings.lock_wait_timeout_s,
        ),
    )


def create_app(settings: Optional[Settings] = None, auth: Optional[GoogleAuth] = None,
               services: Optional[Services] = None) -> FastAPI:
    """Build the app. Tests pass `services`; production builds them at startup."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            app.state.services = services
            yield
            return
        # StartupFatal propagates: the server must not start without credentials
        google_auth = auth or GoogleAuth.from_file(settings.creds_path, settings.scopes)
        async with aiohttp.ClientSession() as session:
            app.state.services = build_services(settings, google_auth, session)
            logger.info("Server is listening on port %s", settings.port)
            yield
            await app.state.services.downloads.wait_idle(timeout=SHUTDOWN_DRAIN_S)

    app = FastAPI(title="sheetcsv", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("Incoming request: %s %s", request.method, request.url.path)
        return await call_next(request)

    @app.exception_handler(SheetCsvError)
    async def sheetcsv_error(request: Request, exc: SheetCsvError) -> PlainTextResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    # /drive/{id} must be matched before the generic /{spreadsheetId}/{sheet}
    app.include_router(drive.router)
    app.include_router(sheets.router)
    return app


def _default_app() -> FastAPI:
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    return create_app(settings)


app = _default_app()
