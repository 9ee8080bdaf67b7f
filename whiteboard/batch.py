"""Tiered pre-computation of per-person schedules.

A tier covers a handful of consecutive days relative to the as-of date.
One run reads each day's tab, extracts events for everyone on the roster,
merges them into one :class:`~whiteboard.models.PersonSchedule` per
person and writes the results to the cache with the tier's TTL.  Keeping
tiers small keeps each run well inside the platform's execution limit.

Problems with a single day or a single person are recorded in the run
metrics and never abort the run; only a roster that cannot be resolved
stops it.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from .config import Tier, WhiteboardSettings
from .dates import sheet_name_for, window_dates
from .errors import CacheWriteFailure, ErrorCode, RosterResolutionFailure, SheetNotFound, SoftError
from .extractor import EventExtractor
from .models import Event, Person, PersonSchedule, RunMetrics, RunState, sort_events
from .roster import RosterResolver
from .utils.schedule_cache import BULK, ScheduleCache, cache_key, person_subject

log = logging.getLogger(__name__)


@dataclass
class WindowResult:
    label: str
    as_of: date
    days: List[date]
    people: List[Person]
    schedules: Dict[str, PersonSchedule]
    metrics: RunMetrics
    categories: List[str] = field(default_factory=list)

    def bundle_json(self) -> str:
        """All schedules of the window plus run metadata, as one payload."""

        return json.dumps(
            {
                "label": self.label,
                "asOf": self.as_of.isoformat(),
                "days": [d.isoformat() for d in self.days],
                "categories": self.categories,
                "metrics": self.metrics.to_dict(),
                "schedules": [self.schedules[p.name].to_dict() for p in self.people],
            },
            sort_keys=True,
            separators=(",", ":"),
        )


def categories_of(people: Sequence[Person]) -> List[str]:
    seen: List[str] = []
    for person in people:
        if person.category not in seen:
            seen.append(person.category)
    return seen


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class TieredBatchProcessor:
    def __init__(
        self,
        settings: WhiteboardSettings,
        reader,
        cache: ScheduleCache,
        roster: Optional[RosterResolver] = None,
        extractor: Optional[EventExtractor] = None,
        timer: Callable[[], float] = time.monotonic,
        stamp: Callable[[], str] = _utc_now_iso,
    ):
        self.settings = settings
        self.reader = reader
        self.cache = cache
        self.roster = roster or RosterResolver.from_settings(reader, settings)
        self.extractor = extractor or EventExtractor(settings.changeover_date)
        self.timer = timer
        self.stamp = stamp
        self.state = RunState.IDLE

    # ------------------------------------------------------------------
    # Shared core
    # ------------------------------------------------------------------

    def window_days(self, as_of: date, offsets: Sequence[int]) -> List[date]:
        return [
            d for d in window_dates(as_of, offsets) if not (self.settings.skip_weekends and d.weekday() >= 5)
        ]

    def resolve_roster(self, as_of: date, days: Sequence[date] = ()) -> List[Person]:
        """Resolve the roster from the configured roster tab or, failing that, a day tab.

        The daily tabs carry the roster columns themselves, so with no
        ``roster_sheet`` configured the as-of tab is tried first and then
        each tab of the window until one exists.
        """

        if self.roster.roster_sheet:
            return self.roster.resolve()

        candidates: List[str] = []
        for day in (as_of, *days):
            name = sheet_name_for(day, self.settings.sheet_name_format)
            if name not in candidates:
                candidates.append(name)

        for name in candidates:
            try:
                return self.roster.resolve(sheet=name)
            except RosterResolutionFailure as exc:
                if not isinstance(exc.__cause__, SheetNotFound):
                    raise
                log.info("No tab %s to read the roster from; trying the next day", name)
        raise RosterResolutionFailure(
            "None of the day tabs in the window exist to read the roster from", {"sheets": candidates}
        )

    def compute_window(
        self,
        label: str,
        as_of: date,
        offsets: Sequence[int],
        people: Optional[Sequence[Person]] = None,
        roster: Optional[Sequence[Person]] = None,
    ) -> WindowResult:
        """Read and extract every day of the window for ``people``.

        Names are always matched against the full ``roster`` so that one
        person's schedule does not depend on who else was asked for.
        ``roster`` is resolved when omitted and ``people`` defaults to all
        of it.  Raises :class:`RosterResolutionFailure` when the roster
        cannot be read.
        """

        started = self.timer()
        metrics = RunMetrics(tier=label, as_of=as_of, last_run=self.stamp())

        days = self.window_days(as_of, offsets)
        roster = list(roster) if roster is not None else self.resolve_roster(as_of, days)
        wanted = list(people) if people is not None else roster
        merged: Dict[str, List[Event]] = {p.name: [] for p in wanted}

        for day in days:
            sheet_name = sheet_name_for(day, self.settings.sheet_name_format)
            try:
                grid = self.reader.read_grid(sheet_name)
            except SheetNotFound as exc:
                log.info("Sheet %s not found; skipping %s", sheet_name, day.isoformat())
                metrics.errors.append(SoftError.from_exception(exc, sheet=sheet_name))
                continue
            except Exception as exc:
                log.exception("Failed reading sheet %s", sheet_name)
                metrics.errors.append(
                    SoftError(code=ErrorCode.INTERNAL_ERROR.value, message=str(exc), sheet=sheet_name)
                )
                continue

            extraction = self.extractor.extract(grid, day, roster, sheet_name)
            metrics.sheets_processed += 1
            metrics.errors.extend(extraction.errors)
            for name, events in extraction.by_person.items():
                if name in merged:
                    merged[name].extend(events)

        generated_at = self.stamp()
        schedules = {
            p.name: PersonSchedule(
                name=p.name,
                category=p.category,
                type=p.type,
                events=sort_events(merged[p.name]),
                days=tuple(days),
                generated_at=generated_at,
            )
            for p in wanted
        }
        metrics.people_processed = len(wanted)
        metrics.events_found = sum(len(s.events) for s in schedules.values())
        metrics.finish(self.timer() - started)

        return WindowResult(
            label=label,
            as_of=as_of,
            days=days,
            people=wanted,
            schedules=schedules,
            metrics=metrics,
            categories=categories_of(wanted),
        )

    # ------------------------------------------------------------------
    # Tier runs
    # ------------------------------------------------------------------

    def run_tier(self, tier: Tier, as_of: date) -> RunMetrics:
        self.state = RunState.RUNNING
        started = self.timer()
        log.info("Batch run starting", extra={"tier": tier.name, "as_of": as_of.isoformat()})

        try:
            result = self.compute_window(tier.name, as_of, tier.offsets)
        except RosterResolutionFailure:
            self.state = RunState.IDLE
            log.exception("Batch run aborted: roster unavailable", extra={"tier": tier.name})
            raise

        metrics = result.metrics
        for person in result.people:
            key = cache_key(tier.name, person_subject(person.name))
            try:
                metrics.cache_bytes += self.cache.put(key, result.schedules[person.name].to_json(), tier.ttl_seconds)
            except CacheWriteFailure as exc:
                metrics.errors.append(SoftError.from_exception(exc, person=person.name))
            except Exception as exc:
                log.exception("Unexpected cache failure for %s", person.name)
                metrics.errors.append(
                    SoftError(code=ErrorCode.CACHE_WRITE_FAILED.value, message=str(exc), person=person.name)
                )

        metrics.finish(self.timer() - started)
        try:
            metrics.cache_bytes += self.cache.put(
                cache_key(tier.name, BULK), result.bundle_json(), tier.ttl_seconds
            )
        except CacheWriteFailure as exc:
            metrics.errors.append(SoftError.from_exception(exc))
            metrics.finish(self.timer() - started)

        self.state = metrics.state
        log.info(
            "Batch run finished: tier=%s sheets=%d people=%d events=%d size=%.3fMB errors=%d in %.2fs",
            tier.name,
            metrics.sheets_processed,
            metrics.people_processed,
            metrics.events_found,
            metrics.cache_size_mb,
            len(metrics.errors),
            metrics.duration_seconds,
        )
        return metrics

    def run_all(self, as_of: date) -> Dict[str, RunMetrics]:
        return {tier.name: self.run_tier(tier, as_of) for tier in self.settings.tiers}
