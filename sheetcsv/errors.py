# sheetcsv/errors.py
from __future__ import annotations
from typing import Optional


class SheetCsvError(Exception):
    """Base error; `status_code` is what the HTTP layer answers with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StartupFatal(SheetCsvError):
    """Credentials could not be loaded; the server must not start."""


class ClientError(SheetCsvError):
    status_code = 400


class MissingParameter(ClientError):
    pass


class InvalidParameter(ClientError):
    def __init__(self, name: str, value: object, expected: str = "a positive integer"):
        super().__init__(f"Invalid {name}: {value!r} (expected {expected}).")
        self.name = name
        self.value = value


class HeaderRowOutOfRange(ClientError):
    def __init__(self, header_row: int, total_rows: int):
        super().__init__(f"headerRow={header_row} is out of range (1..{total_rows}).")
        self.header_row = header_row
        self.total_rows = total_rows


class InvalidTabIndex(ClientError):
    def __init__(self, tab_index: int, tab_count: int):
        super().__init__(f"Invalid tab index: {tab_index}. There are {tab_count} tabs.")
        self.tab_index = tab_index
        self.tab_count = tab_count


class WrongFileType(ClientError):
    pass


class UpstreamError(SheetCsvError):
    """A remote API call failed. Never retried, never cached."""

    def __init__(self, message: str, remote_status: Optional[int] = None):
        super().__init__(message)
        self.remote_status = remote_status


class CoordinationError(SheetCsvError):
    """The download lock marker could not be created or removed."""
