import json
from datetime import date

import pytest
from gspread.utils import a1_range_to_grid_range

from whiteboard.batch import TieredBatchProcessor
from whiteboard.config import settings_from_dict
from whiteboard.errors import SheetNotFound
from whiteboard.layouts import LAYOUT_V2
from whiteboard.utils.schedule_cache import ScheduleCache

AS_OF = date(2024, 12, 15)
STAMP = "2024-12-15T12:00:00Z"

ROSTER_RANGES = [
    {"range": "A1:A10", "category": "Class 26A", "type": "student"},
    {"range": "B1:B10", "category": "Staff IP", "type": "staff"},
]


class FakeSheetReader:
    """In-memory stand-in for the Google Sheets readers."""

    def __init__(self, sheets=None):
        self.sheets = dict(sheets or {})
        self.calls = []

    def read_grid(self, sheet_name):
        self.calls.append(sheet_name)
        if sheet_name not in self.sheets:
            raise SheetNotFound(sheet_name)
        return [list(row) for row in self.sheets[sheet_name]]

    def read_range(self, sheet_name, a1_range):
        if sheet_name not in self.sheets:
            raise SheetNotFound(sheet_name)
        bounds = a1_range_to_grid_range(a1_range)
        rows = self.sheets[sheet_name][bounds.get("startRowIndex", 0) : bounds.get("endRowIndex")]
        return [
            list(row[bounds.get("startColumnIndex", 0) : bounds.get("endColumnIndex")]) for row in rows
        ]


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def blank_grid(rows=110, cols=18):
    return [[""] * cols for _ in range(rows)]


def put_row(grid, row_number, values, start_col=0):
    """Write ``values`` into 1-based ``row_number`` starting at column ``start_col``."""
    for offset, value in enumerate(values):
        grid[row_number - 1][start_col + offset] = value
    return grid


def flying_row(
    model="T-38",
    brief="0730",
    etd="0830",
    eta="0930",
    debrief="1030",
    event="DACT",
    crew=(),
    notes="",
    effective=False,
    cancelled=False,
    partial=False,
):
    crew_cells = list(crew) + [""] * (8 - len(crew))
    return [
        model,
        brief,
        etd,
        eta,
        debrief,
        event,
        *crew_cells,
        notes,
        "TRUE" if effective else "FALSE",
        "TRUE" if cancelled else "FALSE",
        "TRUE" if partial else "FALSE",
    ]


def roster_grid(students=("Adams", "Baker", "Carter", "Flying Events"), staff=("Ortiz",)):
    grid = [["", ""] for _ in range(10)]
    for i, name in enumerate(students):
        grid[i][0] = name
    for i, name in enumerate(staff):
        grid[i][1] = name
    return grid


def scenario_sheets():
    """Three consecutive days from 15 Dec 2024; 18 Dec has no tab.

    Adams is sick on the 15th, flies DACT with Baker on the 16th and sits
    academics with Carter on the 17th.  Ortiz supervises on the 16th.
    """
    sun = put_row(blank_grid(), LAYOUT_V2.na.start_row, ["Sick", "0000", "2359", "Adams"])

    mon = blank_grid()
    put_row(mon, 1, ["SOF", "Ortiz", "0700", "1200"])
    put_row(mon, LAYOUT_V2.flying.start_row, flying_row(crew=("Adams", "Baker"), effective=True))

    tue = put_row(blank_grid(), LAYOUT_V2.ground.start_row, ["Academics", "0800", "1000", "Adams", "Carter"])

    return {
        "Roster": roster_grid(),
        "Sun 15 Dec": sun,
        "Mon 16 Dec": mon,
        "Tue 17 Dec": tue,
    }


@pytest.fixture
def settings():
    return settings_from_dict({"roster_ranges": ROSTER_RANGES, "roster_sheet": "Roster"})


@pytest.fixture
def reader():
    return FakeSheetReader(scenario_sheets())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return ScheduleCache(cache_dir=str(tmp_path / "cache"), clock=clock)


@pytest.fixture
def processor(settings, reader, cache):
    return TieredBatchProcessor(settings, reader, cache, timer=lambda: 0.0, stamp=lambda: STAMP)


@pytest.fixture
def descriptor_path(tmp_path):
    path = tmp_path / "whiteboard.json"
    path.write_text(json.dumps({"roster_ranges": ROSTER_RANGES, "roster_sheet": "Roster"}), encoding="utf-8")
    return str(path)
