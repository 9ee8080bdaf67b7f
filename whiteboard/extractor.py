"""Turn one day's whiteboard grid into per-person events.

The grid is loaded into a :class:`pandas.DataFrame` once and each of the
four row bands is cut out with ``iloc`` using the offsets of the layout
that was in force on the sheet date.  Every parsed row becomes a single
immutable :class:`~whiteboard.models.Event`; the same object is handed to
every roster person named in the row's person-bearing cells.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .dates import parse_hhmm
from .errors import MalformedRow, SoftError
from .layouts import ColumnLayout, RowBand, select_layout
from .models import (
    STATUS_CANCELLED,
    STATUS_EFFECTIVE,
    STATUS_PARTIAL,
    Event,
    FlyingEvent,
    GroundEvent,
    NAEvent,
    Person,
    SheetRef,
    SupervisionEvent,
    sort_events,
)

log = logging.getLogger(__name__)

CHECKED_VALUES = {"TRUE", "X", "✓", "✔"}


def _clean(value) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip()


def parse_checkbox(value) -> bool:
    return _clean(value).upper() in CHECKED_VALUES


class NameMatcher:
    """Finds roster names inside free-text cells.

    A name matches when it appears as a whole word, case-insensitively, so
    ``Adams`` is found in ``Adams/Baker`` but not in ``Adamson``.
    """

    def __init__(self, roster: Iterable[Person]):
        self._by_key: Dict[str, Person] = {}
        for person in roster:
            self._by_key.setdefault(person.name.lower(), person)
        names = sorted(self._by_key, key=len, reverse=True)
        if names:
            alternation = "|".join(re.escape(n) for n in names)
            self._rx: Optional[re.Pattern] = re.compile(
                rf"(?<![A-Za-z0-9])(?:{alternation})(?![A-Za-z0-9])", re.I
            )
        else:
            self._rx = None

    def find(self, cells: Iterable[str]) -> List[Person]:
        found: List[Person] = []
        if self._rx is None:
            return found
        for cell in cells:
            if not cell:
                continue
            for m in self._rx.finditer(cell):
                person = self._by_key[m.group(0).lower()]
                if person not in found:
                    found.append(person)
        return found


@dataclass
class Extraction:
    sheet: SheetRef
    by_person: Dict[str, List[Event]] = field(default_factory=dict)
    events: List[Event] = field(default_factory=list)
    errors: List[SoftError] = field(default_factory=list)

    def attribute(self, event: Event, people: Sequence[Person]) -> None:
        self.events.append(event)
        for person in people:
            self.by_person.setdefault(person.name, []).append(event)


class EventExtractor:
    def __init__(self, changeover: date):
        self.changeover = changeover

    def extract(
        self,
        grid: Sequence[Sequence[str]],
        sheet_date: date,
        roster: Sequence[Person],
        sheet_name: str = "",
    ) -> Extraction:
        layout = select_layout(sheet_date, self.changeover)
        result = Extraction(sheet=SheetRef(sheet_name, sheet_date, layout.version))
        frame = pd.DataFrame([list(r) for r in grid]).fillna("").astype(str) if grid else pd.DataFrame()
        matcher = NameMatcher(roster)

        self._supervision(frame, layout, matcher, result)
        self._flying(frame, layout, matcher, result)
        self._ground(frame, layout, matcher, result)
        self._na(frame, layout, matcher, result)

        for name, events in result.by_person.items():
            result.by_person[name] = sort_events(events)

        log.debug(
            "Extracted sheet",
            extra={
                "sheet": sheet_name,
                "layout": layout.version,
                "events": len(result.events),
                "people": len(result.by_person),
            },
        )
        return result

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _rows(frame: pd.DataFrame, band: RowBand):
        block = frame.iloc[band.start_row - 1 : band.end_row, : band.width]
        for offset, values in enumerate(block.itertuples(index=False, name=None)):
            cells = [_clean(v) for v in values]
            cells += [""] * (band.width - len(cells))
            yield band.start_row + offset, cells

    @staticmethod
    def _malformed(result: Extraction, message: str) -> None:
        log.warning(message, extra={"sheet": result.sheet.sheet_name})
        result.errors.append(SoftError.from_exception(MalformedRow(message), sheet=result.sheet.sheet_name))

    def _time(self, raw: str, result: Extraction, section: str, row_number: int) -> Optional[str]:
        parsed = parse_hhmm(raw)
        if raw and parsed is None:
            self._malformed(result, f"Unparsable time {raw!r} in {section} row {row_number}")
        return parsed

    # -- sections -----------------------------------------------------------

    def _supervision(self, frame, layout: ColumnLayout, matcher: NameMatcher, result: Extraction) -> None:
        cols = layout.supervision_cols
        band = layout.supervision
        for row_number, row in self._rows(frame, band):
            duty = row[cols.duty]
            if not duty:
                continue
            is_auth = "AUTH" in duty.upper()
            for col in range(cols.first_shift, band.width - cols.shift_width + 1, cols.shift_width):
                poc, raw_start, raw_end = row[col], row[col + 1], row[col + 2]
                if not poc:
                    continue
                if is_auth:
                    start = end = None
                    description = f"{duty} | {poc}"
                else:
                    start = self._time(raw_start, result, "Supervision", row_number)
                    end = self._time(raw_end, result, "Supervision", row_number)
                    description = f"{duty} | {poc} | {raw_start}-{raw_end}"
                event = SupervisionEvent(
                    date=result.sheet.date,
                    time=start,
                    description=description,
                    duty=duty,
                    poc=poc,
                    start=start,
                    end=end,
                    is_auth=is_auth,
                )
                result.attribute(event, matcher.find([poc]))

    def _flying(self, frame, layout: ColumnLayout, matcher: NameMatcher, result: Extraction) -> None:
        cols = layout.flying_cols
        section = "Flying Events"
        for row_number, row in self._rows(frame, layout.flying):
            model, event_name = row[cols.model], row[cols.event]
            if not model and not event_name:
                continue

            crew = tuple(c for c in row[cols.crew[0] : cols.crew[1]] if c)
            flags = {
                STATUS_EFFECTIVE: parse_checkbox(row[cols.effective]),
                STATUS_CANCELLED: parse_checkbox(row[cols.cancelled]),
                STATUS_PARTIAL: parse_checkbox(row[cols.partially_effective]),
            }
            ticked = [name for name, on in flags.items() if on]
            status = ticked[0] if len(ticked) == 1 else None
            if len(ticked) > 1:
                self._malformed(result, f"Conflicting status boxes {ticked} in {section} row {row_number}")

            brief_start = self._time(row[cols.brief_start], result, section, row_number)
            event = FlyingEvent(
                date=result.sheet.date,
                time=brief_start,
                description=" | ".join(x for x in (model, event_name, *crew) if x),
                model=model,
                brief_start=brief_start,
                etd=self._time(row[cols.etd], result, section, row_number),
                eta=self._time(row[cols.eta], result, section, row_number),
                debrief_end=self._time(row[cols.debrief_end], result, section, row_number),
                event=event_name,
                crew=crew,
                notes=row[cols.notes],
                status=status,
            )
            result.attribute(event, matcher.find(crew))

    def _ground(self, frame, layout: ColumnLayout, matcher: NameMatcher, result: Extraction) -> None:
        cols = layout.ground_cols
        for row_number, row in self._rows(frame, layout.ground):
            name = row[cols.label]
            if not name:
                continue
            attendees = tuple(c for c in row[cols.people[0] : cols.people[1]] if c)
            start = self._time(row[cols.start], result, "Ground Events", row_number)
            event = GroundEvent(
                date=result.sheet.date,
                time=start,
                description=" | ".join((name, *attendees)),
                event=name,
                start=start,
                end=self._time(row[cols.end], result, "Ground Events", row_number),
                attendees=attendees,
            )
            result.attribute(event, matcher.find(attendees))

    def _na(self, frame, layout: ColumnLayout, matcher: NameMatcher, result: Extraction) -> None:
        cols = layout.na_cols
        for row_number, row in self._rows(frame, layout.na):
            reason = row[cols.label]
            if not reason:
                continue
            affected = tuple(c for c in row[cols.people[0] : cols.people[1]] if c)
            start = self._time(row[cols.start], result, "NA", row_number)
            event = NAEvent(
                date=result.sheet.date,
                time=start,
                description=" | ".join((reason, *affected)),
                reason=reason,
                start=start,
                end=self._time(row[cols.end], result, "NA", row_number),
                affected=affected,
            )
            result.attribute(event, matcher.find(affected))
