"""Schedule data model and its JSON wire format.

Every value stored in the cache is built from these types and serialised
with :func:`json.dumps` so the payload shape is tied to
:data:`SCHEMA_VERSION`.  Bump the version whenever a ``to_dict`` changes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .dates import display_time, minutes_since_midnight
from .errors import SoftError

SCHEMA_VERSION = "v3"

SECTION_SUPERVISION = "Supervision"
SECTION_FLYING = "Flying Events"
SECTION_GROUND = "Ground Events"
SECTION_NA = "NA"

STATUS_EFFECTIVE = "effective"
STATUS_CANCELLED = "cancelled"
STATUS_PARTIAL = "partiallyEffective"
FLIGHT_STATUSES = (STATUS_EFFECTIVE, STATUS_CANCELLED, STATUS_PARTIAL)


@dataclass(frozen=True)
class Person:
    name: str
    category: str
    type: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "category": self.category, "type": self.type}


@dataclass(frozen=True)
class SheetRef:
    sheet_name: str
    date: date
    layout_version: int


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Event:
    date: date
    time: Optional[str]
    description: str

    section: ClassVar[str] = ""

    @property
    def sorts_first(self) -> bool:
        """NA and authorization entries open their day."""
        return False

    @property
    def people(self) -> Tuple[str, ...]:
        return ()

    def sort_key(self):
        minutes = minutes_since_midnight(self.time)
        return (
            self.date,
            0 if self.sorts_first else 1,
            minutes if minutes is not None else -1,
            self.section,
            self.description,
        )

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "time": self.time,
            "displayTime": display_time(self.time),
            "type": self.section,
            "description": self.description,
            "enhanced": {"section": self.section, **self.details()},
        }


@dataclass(frozen=True)
class FlyingEvent(Event):
    model: str
    brief_start: Optional[str]
    etd: Optional[str]
    eta: Optional[str]
    debrief_end: Optional[str]
    event: str
    crew: Tuple[str, ...]
    notes: str
    status: Optional[str]

    section: ClassVar[str] = SECTION_FLYING

    @property
    def people(self) -> Tuple[str, ...]:
        return self.crew

    @property
    def effective(self) -> bool:
        return self.status == STATUS_EFFECTIVE

    @property
    def cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    @property
    def partially_effective(self) -> bool:
        return self.status == STATUS_PARTIAL

    def details(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "briefStart": self.brief_start,
            "etd": self.etd,
            "eta": self.eta,
            "debriefEnd": self.debrief_end,
            "event": self.event,
            "crew": list(self.crew),
            "notes": self.notes,
            "status": {
                "effective": self.effective,
                "cancelled": self.cancelled,
                "partiallyEffective": self.partially_effective,
            },
        }


@dataclass(frozen=True)
class GroundEvent(Event):
    event: str
    start: Optional[str]
    end: Optional[str]
    attendees: Tuple[str, ...]

    section: ClassVar[str] = SECTION_GROUND

    @property
    def people(self) -> Tuple[str, ...]:
        return self.attendees

    def details(self) -> Dict[str, Any]:
        return {"event": self.event, "start": self.start, "end": self.end, "people": list(self.attendees)}


@dataclass(frozen=True)
class NAEvent(Event):
    reason: str
    start: Optional[str]
    end: Optional[str]
    affected: Tuple[str, ...]

    section: ClassVar[str] = SECTION_NA

    @property
    def sorts_first(self) -> bool:
        return True

    @property
    def people(self) -> Tuple[str, ...]:
        return self.affected

    def details(self) -> Dict[str, Any]:
        return {"reason": self.reason, "start": self.start, "end": self.end, "people": list(self.affected)}


@dataclass(frozen=True)
class SupervisionEvent(Event):
    duty: str
    poc: str
    start: Optional[str]
    end: Optional[str]
    is_auth: bool

    section: ClassVar[str] = SECTION_SUPERVISION

    @property
    def sorts_first(self) -> bool:
        return self.is_auth

    @property
    def people(self) -> Tuple[str, ...]:
        return (self.poc,)

    def details(self) -> Dict[str, Any]:
        return {"duty": self.duty, "poc": self.poc, "start": self.start, "end": self.end, "isAuth": self.is_auth}


def _status_from_flags(flags: Dict[str, Any]) -> Optional[str]:
    ticked = [name for name in FLIGHT_STATUSES if flags.get(name)]
    return ticked[0] if len(ticked) == 1 else None


def event_from_dict(data: Dict[str, Any]) -> Event:
    """Inverse of :meth:`Event.to_dict`."""

    enhanced = data.get("enhanced") or {}
    section = enhanced.get("section") or data.get("type")
    common = {
        "date": date.fromisoformat(data["date"]),
        "time": data.get("time"),
        "description": data.get("description", ""),
    }
    if section == SECTION_FLYING:
        return FlyingEvent(
            **common,
            model=enhanced.get("model", ""),
            brief_start=enhanced.get("briefStart"),
            etd=enhanced.get("etd"),
            eta=enhanced.get("eta"),
            debrief_end=enhanced.get("debriefEnd"),
            event=enhanced.get("event", ""),
            crew=tuple(enhanced.get("crew", ())),
            notes=enhanced.get("notes", ""),
            status=_status_from_flags(enhanced.get("status") or {}),
        )
    if section == SECTION_GROUND:
        return GroundEvent(
            **common,
            event=enhanced.get("event", ""),
            start=enhanced.get("start"),
            end=enhanced.get("end"),
            attendees=tuple(enhanced.get("people", ())),
        )
    if section == SECTION_NA:
        return NAEvent(
            **common,
            reason=enhanced.get("reason", ""),
            start=enhanced.get("start"),
            end=enhanced.get("end"),
            affected=tuple(enhanced.get("people", ())),
        )
    if section == SECTION_SUPERVISION:
        return SupervisionEvent(
            **common,
            duty=enhanced.get("duty", ""),
            poc=enhanced.get("poc", ""),
            start=enhanced.get("start"),
            end=enhanced.get("end"),
            is_auth=bool(enhanced.get("isAuth")),
        )
    raise ValueError(f"Unknown event section: {section!r}")


def sort_events(events) -> List[Event]:
    return sorted(events, key=lambda e: e.sort_key())


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


@dataclass
class PersonSchedule:
    name: str
    category: str
    type: str
    events: List[Event]
    days: Tuple[date, ...]
    generated_at: str
    version: str = SCHEMA_VERSION

    @property
    def person(self) -> Person:
        return Person(self.name, self.category, self.type)

    @property
    def days_with_events(self) -> int:
        return len({e.date for e in self.events})

    def within(self, days: Tuple[date, ...]) -> "PersonSchedule":
        """Narrow to ``days`` (events outside the window are dropped)."""

        wanted = set(days)
        return PersonSchedule(
            name=self.name,
            category=self.category,
            type=self.type,
            events=[e for e in self.events if e.date in wanted],
            days=tuple(d for d in days),
            generated_at=self.generated_at,
            version=self.version,
        )

    def to_dict(self, include_timestamp: bool = True) -> Dict[str, Any]:
        payload = {
            "name": self.name,
            "category": self.category,
            "type": self.type,
            "events": [e.to_dict() for e in self.events],
            "days": [d.isoformat() for d in self.days],
            "version": self.version,
        }
        if include_timestamp:
            payload["generatedAt"] = self.generated_at
        return payload

    def to_json(self, include_timestamp: bool = True) -> str:
        return json.dumps(self.to_dict(include_timestamp), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonSchedule":
        return cls(
            name=data["name"],
            category=data.get("category", ""),
            type=data.get("type", ""),
            events=[event_from_dict(e) for e in data.get("events", [])],
            days=tuple(date.fromisoformat(d) for d in data.get("days", [])),
            generated_at=data.get("generatedAt", ""),
            version=data.get("version", SCHEMA_VERSION),
        )

    @classmethod
    def from_json(cls, text: str) -> "PersonSchedule":
        return cls.from_dict(json.loads(text))


# ---------------------------------------------------------------------------
# Run metrics
# ---------------------------------------------------------------------------


class RunState(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    COMPLETED = "Completed"
    COMPLETED_WITH_ERRORS = "CompletedWithErrors"


@dataclass
class RunMetrics:
    tier: str
    as_of: date
    state: RunState = RunState.RUNNING
    last_run: str = ""
    duration_seconds: float = 0.0
    sheets_processed: int = 0
    people_processed: int = 0
    events_found: int = 0
    cache_bytes: int = 0
    errors: List[SoftError] = field(default_factory=list)

    @property
    def cache_size_mb(self) -> float:
        return round(self.cache_bytes / (1024 * 1024), 4)

    def finish(self, duration_seconds: float) -> None:
        self.duration_seconds = round(duration_seconds, 3)
        self.state = RunState.COMPLETED_WITH_ERRORS if self.errors else RunState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier,
            "asOf": self.as_of.isoformat(),
            "state": self.state.value,
            "lastRun": self.last_run,
            "duration": self.duration_seconds,
            "sheetsProcessed": self.sheets_processed,
            "peopleProcessed": self.people_processed,
            "eventsFound": self.events_found,
            "cacheSizeMB": self.cache_size_mb,
            "cacheBytes": self.cache_bytes,
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunMetrics":
        return cls(
            tier=data["tier"],
            as_of=date.fromisoformat(data["asOf"]),
            state=RunState(data.get("state", RunState.COMPLETED.value)),
            last_run=data.get("lastRun", ""),
            duration_seconds=data.get("duration", 0.0),
            sheets_processed=data.get("sheetsProcessed", 0),
            people_processed=data.get("peopleProcessed", 0),
            events_found=data.get("eventsFound", 0),
            cache_bytes=data.get("cacheBytes", 0),
            errors=[SoftError(**e) for e in data.get("errors", [])],
        )
