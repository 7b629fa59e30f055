#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""api/sheets.py
FastAPI routes serving a Google Sheets tab as CSV.

GET /{spreadsheetId}/{sheetParam}
Query params:
  headerRow=N            1-based row used as header; rows above it are dropped
                         and its length fixes the column count (default 1).
                         Ignored when raw=1.
  allowNulableHeaders=1  keep columns whose header is empty, #N/A or #REF!
  raw=1                  no header parsing; every row is returned under a
                         generated A, B, C... header wide enough for the
                         longest row
  useTabIndex=1          sheetParam is a zero-based tab index, not a name

Response: text/csv, 400 on bad parameters, 500 when the Sheets API fails.
"""

from __future__ import annotations
import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from sheetcsv.errors import MissingParameter, SheetCsvError, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()


# tab names may contain "/", which arrives decoded from %2F
@router.get("/{spreadsheet_id}/{sheet_param:path}")
async def sheet_csv(spreadsheet_id: str, sheet_param: str, request: Request) -> PlainTextResponse:
    tabs = request.app.state.services.tabs
    try:
        body = await tabs.handle(spreadsheet_id, sheet_param, request.query_params)
    except SheetCsvError:
        raise
    except Exception as e:
        logger.exception("Error fetching sheet data")
        raise UpstreamError(f"Error fetching sheet data: {e}") from e
    return PlainTextResponse(body, media_type="text/csv")


@router.get("/{spreadsheet_id}")
async def missing_sheet_param(spreadsheet_id: str) -> PlainTextResponse:
    raise MissingParameter("Missing spreadsheetId or sheetParam.")
