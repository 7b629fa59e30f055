# sheetcsv/server.py — CLI entrypoint: load credentials, then serve
from __future__ import annotations
import argparse
import dataclasses
import logging

import uvicorn

from sheetcsv.auth import GoogleAuth
from sheetcsv.errors import StartupFatal
from sheetcsv.log import setup_logging
from sheetcsv.settings import Settings

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    settings = Settings.from_env()
    p = argparse.ArgumentParser(prog="sheetcsv", description="Serve Google Sheets tabs and Drive CSV files as CSV over HTTP")
    p.add_argument("--host", default=settings.host)
    p.add_argument("--port", type=int, default=settings.port)
    p.add_argument("--credentials", default=settings.creds_path, help="Service account JSON key file")
    p.add_argument("--cache-dir", default=settings.cache_dir)
    p.add_argument("--log-level", default=settings.log_level)
    args = p.parse_args(argv)

    settings = dataclasses.replace(
        settings, host=args.host, port=args.port, creds_path=args.credentials,
        cache_dir=args.cache_dir, log_level=args.log_level.upper(),
    )
    setup_logging(settings.log_level)

    try:
        auth = GoogleAuth.from_file(settings.creds_path, settings.scopes)
    except StartupFatal as e:
        logger.critical("Not starting: %s", e)
        return 1

    from api.index import create_app
    app = create_app(settings, auth=auth)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
