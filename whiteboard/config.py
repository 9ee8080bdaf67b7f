import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigurationError

log = logging.getLogger(__name__)


class Config:
    """Base configuration loaded from environment variables."""

    # --- General ---
    SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    TZ = os.getenv("TZ", "America/Chicago")

    # --- Google Sheets ---
    SPREADSHEET_ID = os.getenv("SPREADSHEET_ID")
    GOOGLE_SERVICE_ACCOUNT_JSON = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON", "")
    SHEET_SOURCE = os.getenv("SHEET_SOURCE", "gspread").lower()  # gspread | public
    PUBLIC_FIRST_TAB = os.getenv("PUBLIC_FIRST_TAB", "")  # name of the first tab when SHEET_SOURCE=public

    # --- Whiteboard descriptor (hot reloaded) ---
    WHITEBOARD_CONFIG_PATH = os.getenv("WHITEBOARD_CONFIG_PATH", "")

    # --- Cache ---
    CACHE_DIR = os.path.join(os.path.dirname(__file__), "cache")
    CACHE_MAX_ENTRY_KB = int(os.getenv("CACHE_MAX_ENTRY_KB", "5120"))
    LIVE_CACHE_TTL_SECONDS = int(os.getenv("LIVE_CACHE_TTL_SECONDS", "900"))

    # --- Queries ---
    DEFAULT_DAYS = int(os.getenv("DEFAULT_DAYS", "7"))
    MAX_DAYS = int(os.getenv("MAX_DAYS", "14"))
    SIMULATED_TODAY = os.getenv("SIMULATED_TODAY", "")

    # --- Batch scheduler ---
    ENABLE_SCHEDULER = os.getenv("ENABLE_SCHEDULER", "True").lower() == "true"
    BATCH_INTERVAL_MINUTES = int(os.getenv("BATCH_INTERVAL_MINUTES", "5"))

    # --- Misc ---
    DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"


# ---------------------------------------------------------------------------
# Whiteboard descriptor
# ---------------------------------------------------------------------------

DEFAULT_ROSTER_RANGES = (
    {"range": "T3:T30", "category": "Class 26A", "type": "student"},
    {"range": "U3:U30", "category": "Class 26B", "type": "student"},
    {"range": "V3:V30", "category": "FTC-A", "type": "student"},
    {"range": "W3:W30", "category": "FTC-B", "type": "student"},
    {"range": "X3:X30", "category": "STC-A", "type": "student"},
    {"range": "Y3:Y30", "category": "STC-B", "type": "student"},
    {"range": "Z3:Z50", "category": "Staff IP", "type": "staff"},
)

DEFAULT_DENYLIST = (
    # section and group headers
    "bravo students", "stc students", "alpha students", "ftc-b", "stc-b",
    "ftc-a", "stc-a", "staff ip", "stc staff", "staff stc", "attached",
    "support", "ifte", "icso", "future",
    # scheduling labels
    "academics", "events", "ground events", "flying events", "supervision",
    "groot", "mtg", "meeting", "interview", "brief", "debrief", "ccep",
    "checkride", "flight", "sortie", "mission", "training", "class",
    "lecture", "exam", "eval", "leave", "tdy", "appointment", "admin",
    "standby", "alert", "holiday", "down day", "weekend", "maintenance",
    "weather",
)

DEFAULT_TIERS = (
    {"name": "recent", "first_offset": 0, "last_offset": 2, "ttl_seconds": 1800, "refresh_minutes": 15},
    {"name": "upcoming", "first_offset": 3, "last_offset": 7, "ttl_seconds": 21600, "refresh_minutes": 60},
)

PERSON_TYPES = ("student", "staff")


@dataclass(frozen=True)
class RosterRange:
    range: str
    category: str
    type: str


@dataclass(frozen=True)
class Tier:
    """Contiguous day-offset window relative to the as-of date."""

    name: str
    first_offset: int
    last_offset: int
    ttl_seconds: int
    refresh_minutes: int = 15

    @property
    def offsets(self) -> Tuple[int, ...]:
        return tuple(range(self.first_offset, self.last_offset + 1))


@dataclass(frozen=True)
class WhiteboardSettings:
    roster_ranges: Tuple[RosterRange, ...]
    roster_sheet: str = ""
    denylist: Tuple[str, ...] = DEFAULT_DENYLIST
    changeover_date: date = date(2024, 12, 9)
    tiers: Tuple[Tier, ...] = ()
    grid_range: str = "A1:R110"
    sheet_name_format: str = "{weekday} {day} {month}"
    skip_weekends: bool = False
    duplicate_policy: str = "error"  # error | first
    bulk_marker: str = "__ALL__"

    def tier(self, name: str) -> Tier:
        for tier in self.tiers:
            if tier.name == name:
                return tier
        raise KeyError(f"Unknown tier: {name}")

    @property
    def window_days(self) -> int:
        return max((t.last_offset for t in self.tiers), default=-1) + 1


def _parse_iso(value: str, field_name: str) -> date:
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"{field_name} must be YYYY-MM-DD, got {value!r}") from exc


def _build_ranges(raw) -> Tuple[RosterRange, ...]:
    ranges = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigurationError("roster_ranges entries must be objects")
        try:
            entry = RosterRange(
                range=str(item["range"]).strip(),
                category=str(item["category"]).strip(),
                type=str(item.get("type", "student")).strip().lower(),
            )
        except KeyError as exc:
            raise ConfigurationError(f"roster range missing {exc.args[0]!r}") from exc
        if entry.type not in PERSON_TYPES:
            raise ConfigurationError(f"roster range type must be one of {PERSON_TYPES}")
        ranges.append(entry)
    return tuple(ranges)


def _build_tiers(raw) -> Tuple[Tier, ...]:
    tiers = []
    for item in raw:
        try:
            tier = Tier(
                name=str(item["name"]),
                first_offset=int(item["first_offset"]),
                last_offset=int(item["last_offset"]),
                ttl_seconds=int(item.get("ttl_seconds", 1800)),
                refresh_minutes=int(item.get("refresh_minutes", 15)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid tier definition: {item!r}") from exc
        if tier.last_offset < tier.first_offset:
            raise ConfigurationError(f"tier {tier.name} has an empty offset range")
        tiers.append(tier)

    tiers.sort(key=lambda t: t.first_offset)
    for prev, cur in zip(tiers, tiers[1:]):
        if cur.first_offset != prev.last_offset + 1:
            raise ConfigurationError(
                f"tiers {prev.name} and {cur.name} must be contiguous and non-overlapping"
            )
    if len({t.name for t in tiers}) != len(tiers):
        raise ConfigurationError("tier names must be unique")
    return tuple(tiers)


def settings_from_dict(data: Optional[Dict[str, Any]] = None) -> WhiteboardSettings:
    """Build settings from a descriptor dict, filling gaps with defaults."""

    data = dict(data or {})
    policy = str(data.get("duplicate_policy", "error")).lower()
    if policy not in ("error", "first"):
        raise ConfigurationError("duplicate_policy must be 'error' or 'first'")

    settings = WhiteboardSettings(
        roster_ranges=_build_ranges(data.get("roster_ranges", DEFAULT_ROSTER_RANGES)),
        roster_sheet=str(data.get("roster_sheet") or ""),
        denylist=tuple(str(p).lower() for p in data.get("denylist", DEFAULT_DENYLIST)),
        changeover_date=_parse_iso(data.get("changeover_date", "2024-12-09"), "changeover_date"),
        tiers=_build_tiers(data.get("tiers", DEFAULT_TIERS)),
        grid_range=str(data.get("grid_range", "A1:R110")),
        sheet_name_format=str(data.get("sheet_name_format", "{weekday} {day} {month}")),
        skip_weekends=bool(data.get("skip_weekends", False)),
        duplicate_policy=policy,
        bulk_marker=str(data.get("bulk_marker", "__ALL__")),
    )
    if not settings.tiers:
        raise ConfigurationError("at least one tier must be configured")
    return settings


class SettingsLoader:
    """Re-reads the JSON descriptor whenever its mtime changes."""

    def __init__(self, path: str = ""):
        self.path = path
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        self._settings: Optional[WhiteboardSettings] = None

    def get(self) -> WhiteboardSettings:
        with self._lock:
            if not self.path:
                if self._settings is None:
                    self._settings = settings_from_dict()
                return self._settings

            try:
                mtime = os.path.getmtime(self.path)
            except OSError as exc:
                raise ConfigurationError(f"Descriptor not readable: {self.path}") from exc

            if self._settings is None or mtime != self._mtime:
                with open(self.path, "r", encoding="utf-8") as fh:
                    try:
                        data = json.load(fh)
                    except json.JSONDecodeError as exc:
                        raise ConfigurationError(f"Descriptor is not valid JSON: {self.path}") from exc
                self._settings = settings_from_dict(data)
                self._mtime = mtime
                log.info("Whiteboard descriptor loaded", extra={"path": self.path})
            return self._settings
