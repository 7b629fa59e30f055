# sheetcsv/settings.py
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Tuple

CREDS_PATH = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "./google_creds.json").strip()
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CACHE_DIR = os.getenv("SHEETCSV_CACHE_DIR", "./cache")
CACHE_TTL_S = float(os.getenv("SHEETCSV_CACHE_TTL", "30"))
LOCK_STALE_AFTER_S = float(os.getenv("SHEETCSV_LOCK_STALE_AFTER", "30"))
LOCK_POLL_INTERVAL_S = float(os.getenv("SHEETCSV_LOCK_POLL_INTERVAL", "0.5"))
LOCK_WAIT_TIMEOUT_S = float(os.getenv("SHEETCSV_LOCK_WAIT_TIMEOUT", "30"))
FETCH_TIMEOUT_S = float(os.getenv("SHEETCSV_FETCH_TIMEOUT", "60"))
DRIVE_EXTENSIONS = tuple(
    e.strip().lower() for e in os.getenv("SHEETCSV_DRIVE_EXTENSIONS", ".csv").split(",") if e.strip()
)

SCOPES = (
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
)


@dataclass(frozen=True)
class Settings:
    creds_path: str = CREDS_PATH
    host: str = HOST
    port: int = PORT
    log_level: str = LOG_LEVEL
    cache_dir: str = CACHE_DIR
    cache_ttl_s: float = CACHE_TTL_S
    lock_stale_after_s: float = LOCK_STALE_AFTER_S
    lock_poll_interval_s: float = LOCK_POLL_INTERVAL_S
    lock_wait_timeout_s: float = LOCK_WAIT_TIMEOUT_S
    fetch_timeout_s: float = FETCH_TIMEOUT_S
    drive_extensions: Tuple[str, ...] = DRIVE_EXTENSIONS
    scopes: Tuple[str, ...] = field(default=SCOPES)

    @classmethod
    def from_env(cls) -> "Settings":
        """Re-read the environment; module constants are frozen at import time."""
        return cls(
            creds_path=os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "./google_creds.json").strip(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cache_dir=os.getenv("SHEETCSV_CACHE_DIR", "./cache"),
            cache_ttl_s=float(os.getenv("SHEETCSV_CACHE_TTL", "30")),
            lock_stale_after_s=float(os.getenv("SHEETCSV_LOCK_STALE_AFTER", "30")),
            lock_poll_interval_s=float(os.getenv("SHEETCSV_LOCK_POLL_INTERVAL", "0.5")),
            lock_wait_timeout_s=float(os.getenv("SHEETCSV_LOCK_WAIT_TIMEOUT", "30")),
            fetch_timeout_s=float(os.getenv("SHEETCSV_FETCH_TIMEOUT", "60")),
            drive_extensions=tuple(
                e.strip().lower()
                for e in os.getenv("SHEETCSV_DRIVE_EXTENSIONS", ".csv").split(",")
                if e.strip()
            ),
        )
