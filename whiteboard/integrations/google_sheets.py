#!/usr/bin/env python3
"""Read-only access to the whiteboard spreadsheet.

Readers hand back plain rectangular ``list[list[str]]`` grids and know
nothing about what the cells mean.  Two transports are available:

* :class:`GoogleSheetReader` talks to the Sheets API through gspread using
  a service account (the normal deployment).
* :class:`PublicSheetReader` pulls the Visualization CSV export of a sheet
  that is published to "anyone with the link" and needs no credentials.
"""

from __future__ import annotations

import io
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import gspread
import pandas as pd
import requests
from gspread.exceptions import APIError, WorksheetNotFound
from gspread.utils import a1_range_to_grid_range, fill_gaps
from google.oauth2.service_account import Credentials

from ..errors import SheetNotFound

log = logging.getLogger(__name__)

Grid = List[List[str]]

ENV_KEY = "GOOGLE_SERVICE_ACCOUNT_JSON"
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]


# ---------------------------------------------------------------------------
# Google client utilities
# ---------------------------------------------------------------------------


def client_from_env(raw: Optional[str] = None) -> gspread.Client:
    """Authorise gspread from a service-account JSON payload or key-file path."""

    raw = (raw if raw is not None else os.getenv(ENV_KEY, "")).strip()
    log.debug("Initialising Google Sheets client using %s", ENV_KEY)
    if not raw:
        log.error("Environment variable %s is not configured.", ENV_KEY)
        raise RuntimeError(
            f"Environment variable {ENV_KEY} not found. "
            "Set it to the full JSON payload of your service account key."
        )

    try:
        info = json.loads(raw)
    except json.JSONDecodeError:
        # maybe it's a filepath
        try:
            with open(raw, "r", encoding="utf-8") as fh:
                info = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            log.exception("Failed to parse service account JSON from %s", ENV_KEY)
            raise RuntimeError("Invalid service account JSON payload.") from exc

    creds = Credentials.from_service_account_info(info, scopes=SCOPES)
    client = gspread.authorize(creds)
    log.debug("Google Sheets client initialised successfully.")
    return client


def _is_quota_error(exc: Exception) -> bool:
    text = str(exc).lower()
    return "429" in text or "quota exceeded" in text


def retry_quota(fn, *args, retries: int = 4, backoff: float = 0.8, sleep=time.sleep, **kwargs):
    """Call ``fn`` and back off exponentially on Sheets API quota errors only."""

    for attempt in range(retries):
        try:
            return fn(*args, **kwargs)
        except APIError as exc:
            if not _is_quota_error(exc):
                raise
            delay = backoff * (2 ** attempt)
            log.warning("Sheets quota hit; retrying in %.1fs", delay)
            sleep(delay)
    return fn(*args, **kwargs)


def rectangle(values: Sequence[Sequence], a1_range: str) -> Grid:
    """Pad ``values`` out to the full size of ``a1_range``."""

    bounds = a1_range_to_grid_range(a1_range)
    rows = bounds["endRowIndex"] - bounds.get("startRowIndex", 0)
    cols = bounds["endColumnIndex"] - bounds.get("startColumnIndex", 0)
    trimmed = [["" if c is None else str(c) for c in r[:cols]] for r in list(values)[:rows]]
    return fill_gaps(trimmed, rows=rows, cols=cols)


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


@dataclass
class SheetConfig:
    sheet_id: str
    grid_range: str = "A1:R110"
    first_tab: str = ""


class GoogleSheetReader:
    def __init__(self, cfg: SheetConfig, client: Optional[gspread.Client] = None):
        self.cfg = cfg
        self._client = client
        self._spreadsheet: Optional[gspread.Spreadsheet] = None

    def _open(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            if not self.cfg.sheet_id:
                raise RuntimeError("SPREADSHEET_ID is not configured.")
            gc = self._client or client_from_env()
            self._spreadsheet = retry_quota(gc.open_by_key, self.cfg.sheet_id)
        return self._spreadsheet

    def _worksheet(self, sheet_name: str) -> gspread.Worksheet:
        try:
            return retry_quota(self._open().worksheet, sheet_name)
        except WorksheetNotFound as exc:
            raise SheetNotFound(sheet_name) from exc

    def read_range(self, sheet_name: str, a1_range: str) -> Grid:
        ws = self._worksheet(sheet_name)
        log.debug("Reading %s!%s", sheet_name, a1_range)
        values = retry_quota(ws.get_values, a1_range)
        return rectangle(values, a1_range)

    def read_grid(self, sheet_name: str) -> Grid:
        return self.read_range(sheet_name, self.cfg.grid_range)


class PublicSheetReader:
    """Reads a published spreadsheet through the gviz CSV export.

    gviz answers an unknown ``sheet=`` with the first tab instead of an
    error, so a named read that comes back identical to the first tab is
    treated as missing unless the name is ``cfg.first_tab``.  The first
    tab's export is kept for ``first_tab_ttl`` seconds per range.
    """

    URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:csv&headers=0&range={range}"

    def __init__(
        self,
        cfg: SheetConfig,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        first_tab_ttl: float = 300,
        clock=time.monotonic,
    ):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.timeout = timeout
        self.first_tab_ttl = first_tab_ttl
        self.clock = clock
        self._first_tab: Dict[str, Tuple[float, str]] = {}

    def _get(self, a1_range: str, sheet_name: Optional[str] = None) -> requests.Response:
        url = self.URL.format(sheet_id=self.cfg.sheet_id, range=quote(a1_range))
        if sheet_name is not None:
            url += f"&sheet={quote(sheet_name)}"
        return self.session.get(url, timeout=self.timeout)

    def _first_tab_text(self, a1_range: str) -> str:
        now = self.clock()
        hit = self._first_tab.get(a1_range)
        if hit and now - hit[0] < self.first_tab_ttl:
            return hit[1]
        response = self._get(a1_range)
        response.raise_for_status()
        self._first_tab[a1_range] = (now, response.text)
        return response.text

    def read_range(self, sheet_name: str, a1_range: str) -> Grid:
        response = self._get(a1_range, sheet_name)
        log.debug(
            "gviz response for %s: status=%s bytes=%d",
            sheet_name,
            response.status_code,
            len(response.content),
        )
        if response.status_code in (400, 404):
            raise SheetNotFound(sheet_name, {"status": response.status_code})
        response.raise_for_status()
        if sheet_name != self.cfg.first_tab and response.text == self._first_tab_text(a1_range):
            raise SheetNotFound(sheet_name, {"status": response.status_code, "servedFirstTab": True})

        if not response.text.strip():
            return rectangle([], a1_range)
        df = pd.read_csv(io.StringIO(response.text), dtype=str, header=None, keep_default_na=False)
        return rectangle(df.values.tolist(), a1_range)

    def read_grid(self, sheet_name: str) -> Grid:
        return self.read_range(sheet_name, self.cfg.grid_range)


def build_reader(app_config, grid_range: str):
    cfg = SheetConfig(
        sheet_id=app_config.get("SPREADSHEET_ID") or "",
        grid_range=grid_range,
        first_tab=app_config.get("PUBLIC_FIRST_TAB") or "",
    )
    if app_config.get("SHEET_SOURCE", "gspread") == "public":
        return PublicSheetReader(cfg)
    return GoogleSheetReader(cfg)
