"""Interactive schedule lookups: cache first, live computation on a miss."""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .batch import TieredBatchProcessor, WindowResult
from .config import WhiteboardSettings
from .dates import resolve_as_of, sheet_name_for
from .errors import CacheWriteFailure, InvalidRequest, PersonNotFound, SheetNotFound
from .models import SCHEMA_VERSION, PersonSchedule, RunMetrics, sort_events
from .utils.schedule_cache import BULK, ScheduleCache, cache_key, person_subject

log = logging.getLogger(__name__)


def _merge_metrics(metrics: Sequence[RunMetrics]) -> Dict[str, Any]:
    return {
        "lastRun": max((m.last_run for m in metrics), default=""),
        "duration": round(sum(m.duration_seconds for m in metrics), 3),
        "sheetsProcessed": sum(m.sheets_processed for m in metrics),
        "peopleProcessed": max((m.people_processed for m in metrics), default=0),
        "eventsFound": sum(m.events_found for m in metrics),
        "cacheSizeMB": round(sum(m.cache_bytes for m in metrics) / (1024 * 1024), 4),
        "errors": [e.to_dict() for m in metrics for e in m.errors],
    }


def _merge_schedules(parts: Sequence[PersonSchedule], days: Tuple[date, ...]) -> PersonSchedule:
    first = parts[0]
    events = sort_events(e for part in parts for e in part.events)
    merged = PersonSchedule(
        name=first.name,
        category=first.category,
        type=first.type,
        events=events,
        days=tuple(sorted({d for part in parts for d in part.days})),
        generated_at=min(p.generated_at for p in parts),
        version=first.version,
    )
    return merged.within(days)


class QueryService:
    def __init__(
        self,
        settings: WhiteboardSettings,
        processor: TieredBatchProcessor,
        cache: ScheduleCache,
        tz_name: str = "America/Chicago",
        simulated_today: str = "",
        default_days: int = 7,
        max_days: int = 14,
        live_ttl_seconds: int = 900,
    ):
        self.settings = settings
        self.processor = processor
        self.cache = cache
        self.tz_name = tz_name
        self.simulated_today = simulated_today
        self.default_days = default_days
        self.max_days = max_days
        self.live_ttl_seconds = live_ttl_seconds

    @classmethod
    def from_app(cls, app, settings, processor, cache) -> "QueryService":
        return cls(
            settings,
            processor,
            cache,
            tz_name=app.config.get("TZ", "America/Chicago"),
            simulated_today=app.config.get("SIMULATED_TODAY", ""),
            default_days=int(app.config.get("DEFAULT_DAYS", 7)),
            max_days=int(app.config.get("MAX_DAYS", 14)),
            live_ttl_seconds=int(app.config.get("LIVE_CACHE_TTL_SECONDS", 900)),
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def query(
        self,
        name: Optional[str],
        days=None,
        test_date: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise InvalidRequest("Query parameter 'name' is required", {"field": "name"})
        window = self._days(days)
        as_of, test_mode = resolve_as_of(test_date, self.simulated_today, self.tz_name)
        offsets = tuple(range(window))
        wanted = self._dates(as_of, offsets)
        live_scope = f"live-{as_of.isoformat()}-{window}d"

        common = {
            "version": SCHEMA_VERSION,
            "testMode": test_mode,
            "simulatedToday": as_of.isoformat(),
            "daysSearched": len(wanted),
        }
        if name.lower() == self.settings.bulk_marker.lower():
            payload = self._bulk(as_of, offsets, wanted, live_scope, categories)
        else:
            payload = self._single(name, as_of, offsets, wanted, live_scope)
        payload.update(common)
        return payload

    def _dates(self, as_of: date, offsets) -> Tuple[date, ...]:
        return tuple(self.processor.window_days(as_of, offsets))

    def _days(self, raw) -> int:
        if raw in (None, ""):
            return self.default_days
        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidRequest("Query parameter 'days' must be an integer", {"days": raw}) from exc
        if not 1 <= value <= self.max_days:
            raise InvalidRequest(
                f"Query parameter 'days' must be between 1 and {self.max_days}", {"days": value}
            )
        return value

    def _store(self, key: str, payload: str) -> int:
        try:
            return self.cache.put(key, payload, self.live_ttl_seconds)
        except CacheWriteFailure as exc:
            log.warning("Live result not cached: %s", exc.message, extra={"key": key})
            return 0

    def _no_sheets(self, result: WindowResult) -> None:
        if result.metrics.sheets_processed == 0:
            names = [sheet_name_for(d, self.settings.sheet_name_format) for d in result.days]
            raise SheetNotFound(
                names[0] if names else "",
                {"sheets": names},
                message="No schedule sheets exist for the requested window",
            )

    # ------------------------------------------------------------------
    # Single person
    # ------------------------------------------------------------------

    def _single_from_cache(self, subject: str, as_of, wanted, live_scope) -> Optional[PersonSchedule]:
        text = self.cache.get(cache_key(live_scope, subject))
        if text:
            return PersonSchedule.from_json(text)

        # tier entries count only as a complete set computed for this as-of date
        parts = []
        for tier in self.settings.tiers:
            text = self.cache.get(cache_key(tier.name, subject))
            if not text:
                return None
            part = PersonSchedule.from_json(text)
            if part.days != self._dates(as_of, tier.offsets):
                return None
            parts.append(part)
        if not parts or not set(wanted) <= {d for p in parts for d in p.days}:
            return None
        return _merge_schedules(parts, wanted)

    def _single(self, name, as_of, offsets, wanted, live_scope) -> Dict[str, Any]:
        subject = person_subject(name)
        schedule = self._single_from_cache(subject, as_of, wanted, live_scope)
        cached = schedule is not None

        if schedule is None:
            roster = self.processor.resolve_roster(as_of, wanted)
            person = next((p for p in roster if person_subject(p.name) == subject), None)
            if person is None:
                raise PersonNotFound(f"'{name}' is not on the roster", {"name": name})
            result = self.processor.compute_window(live_scope, as_of, offsets, people=[person], roster=roster)
            self._no_sheets(result)
            schedule = result.schedules[person.name]
            self._store(cache_key(live_scope, subject), schedule.to_json())

        log.info(
            "Schedule query served",
            extra={"person": schedule.name, "cached": cached, "events": len(schedule.events)},
        )
        return {
            "searchName": name,
            "name": schedule.name,
            "category": schedule.category,
            "type": schedule.type,
            "events": [e.to_dict() for e in schedule.events],
            "totalEvents": len(schedule.events),
            "daysWithEvents": schedule.days_with_events,
            "generatedAt": schedule.generated_at,
            "cached": cached,
            "source": "cache" if cached else "live",
        }

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def _tier_bundles(self, as_of: date, wanted) -> Optional[List[Dict[str, Any]]]:
        bundles = []
        for tier in self.settings.tiers:
            text = self.cache.get(cache_key(tier.name, BULK))
            if not text:
                return None
            bundle = json.loads(text)
            if bundle.get("asOf") != as_of.isoformat():
                return None
            bundles.append(bundle)
        covered = {date.fromisoformat(d) for b in bundles for d in b.get("days", [])}
        if not bundles or not set(wanted) <= covered:
            return None
        return bundles

    def _bulk_from_cache(self, as_of, wanted, live_scope):
        text = self.cache.get(cache_key(live_scope, BULK))
        bundles = [json.loads(text)] if text else self._tier_bundles(as_of, wanted)
        if bundles is None:
            return None

        by_name: Dict[str, List[PersonSchedule]] = {}
        order: List[str] = []
        categories: List[str] = []
        for bundle in bundles:
            for raw in bundle.get("schedules", []):
                schedule = PersonSchedule.from_dict(raw)
                if schedule.name not in by_name:
                    order.append(schedule.name)
                by_name.setdefault(schedule.name, []).append(schedule)
            for category in bundle.get("categories", []):
                if category not in categories:
                    categories.append(category)

        schedules = [_merge_schedules(by_name[n], wanted) for n in order]
        metrics = [RunMetrics.from_dict(b["metrics"]) for b in bundles]
        return schedules, categories, _merge_metrics(metrics)

    def _bulk(self, as_of, offsets, wanted, live_scope, categories) -> Dict[str, Any]:
        hit = self._bulk_from_cache(as_of, wanted, live_scope)
        cached = hit is not None

        if hit is None:
            result = self.processor.compute_window(live_scope, as_of, offsets)
            self._no_sheets(result)
            # the stored bundle reports its own size
            result.metrics.cache_bytes = len(result.bundle_json().encode("utf-8"))
            result.metrics.cache_bytes = self._store(cache_key(live_scope, BULK), result.bundle_json())
            schedules = [result.schedules[p.name] for p in result.people]
            hit = (schedules, result.categories, _merge_metrics([result.metrics]))

        schedules, all_categories, metadata = hit
        wanted_categories = {c.strip().lower() for c in (categories or []) if c.strip()}
        if wanted_categories:
            schedules = [s for s in schedules if s.category.lower() in wanted_categories]

        events = []
        for schedule in schedules:
            for event in schedule.events:
                events.append({**event.to_dict(), "person": schedule.name})

        log.info("Bulk query served", extra={"people": len(schedules), "cached": cached})
        return {
            "searchName": self.settings.bulk_marker,
            "category": "All",
            "type": "bulk",
            "events": events,
            "totalEvents": len(events),
            "daysWithEvents": len({e["date"] for e in events}),
            "generatedAt": metadata["lastRun"],
            "people": [
                {**s.person.to_dict(), "totalEvents": len(s.events), "daysWithEvents": s.days_with_events}
                for s in schedules
            ],
            "categories": all_categories,
            "metadata": metadata,
            "cached": cached,
            "source": "cache" if cached else "live",
        }
