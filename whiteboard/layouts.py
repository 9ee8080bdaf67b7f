"""Row-band and column offsets for the daily whiteboard tabs.

The tab layout changed once (the flying, ground and NA bands moved down a
few rows).  Both versions live here as plain frozen structs and
:func:`select_layout` picks one from the sheet date alone.  Row numbers
are 1-based and inclusive, matching the A1 ranges people see in the
sheet; column numbers are 0-based offsets into the grid.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Tuple


@dataclass(frozen=True)
class RowBand:
    start_row: int
    end_row: int
    width: int


@dataclass(frozen=True)
class SupervisionColumns:
    duty: int = 0
    first_shift: int = 1
    shift_width: int = 3  # POC, start, end


@dataclass(frozen=True)
class FlyingColumns:
    model: int = 0
    brief_start: int = 1
    etd: int = 2
    eta: int = 3
    debrief_end: int = 4
    event: int = 5
    crew: Tuple[int, int] = (6, 14)
    notes: int = 14
    effective: int = 15
    cancelled: int = 16
    partially_effective: int = 17


@dataclass(frozen=True)
class ListColumns:
    """Ground and NA rows: a label, a time window, then names."""

    label: int = 0
    start: int = 1
    end: int = 2
    people: Tuple[int, int] = (3, 14)


@dataclass(frozen=True)
class ColumnLayout:
    version: int
    supervision: RowBand
    flying: RowBand
    ground: RowBand
    na: RowBand
    supervision_cols: SupervisionColumns = SupervisionColumns()
    flying_cols: FlyingColumns = FlyingColumns()
    ground_cols: ListColumns = ListColumns()
    na_cols: ListColumns = ListColumns()


LAYOUT_V1 = ColumnLayout(
    version=1,
    supervision=RowBand(1, 7, 10),
    flying=RowBand(9, 45, 18),
    ground=RowBand(47, 75, 14),
    na=RowBand(77, 105, 14),
)

LAYOUT_V2 = ColumnLayout(
    version=2,
    supervision=RowBand(1, 7, 10),
    flying=RowBand(10, 50, 18),
    ground=RowBand(52, 80, 14),
    na=RowBand(82, 110, 14),
)

LAYOUTS = {layout.version: layout for layout in (LAYOUT_V1, LAYOUT_V2)}


def select_layout(sheet_date: date, changeover: date) -> ColumnLayout:
    return LAYOUT_V2 if sheet_date >= changeover else LAYOUT_V1
