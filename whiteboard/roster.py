"""Resolve the list of people from the roster columns of the whiteboard."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from .config import RosterRange
from .errors import RosterConflict, RosterResolutionFailure, WhiteboardError
from .models import Person

log = logging.getLogger(__name__)

NON_NAMES = {"false", "true", "yes", "no", "n/a", "tbd"}


def is_valid_person_name(value: str, denylist: Sequence[str]) -> bool:
    """Return ``False`` for roster cells that are labels rather than people."""

    name = (value or "").strip()
    if not name or name == "." or len(name) < 2:
        return False

    lower = name.lower()
    if lower in NON_NAMES:
        return False
    if re.fullmatch(r"\d+", name):
        return False
    if any(fragment in lower for fragment in denylist):
        return False

    # all-caps codes such as T-38 or FCF 2; a single all-caps word is a surname
    if len(name) > 3 and re.fullmatch(r"[A-Z0-9\s\-/]+", name) and not re.fullmatch(r"[A-Z]+", name):
        return False
    return True


class RosterResolver:
    def __init__(
        self,
        reader,
        ranges: Sequence[RosterRange],
        denylist: Sequence[str],
        roster_sheet: str,
        duplicate_policy: str = "error",
    ):
        self.reader = reader
        self.ranges = tuple(ranges)
        self.denylist = tuple(d.lower() for d in denylist)
        self.roster_sheet = roster_sheet
        self.duplicate_policy = duplicate_policy
        self.conflicts: List[Tuple[str, str, str]] = []

    @classmethod
    def from_settings(cls, reader, settings) -> "RosterResolver":
        return cls(
            reader,
            settings.roster_ranges,
            settings.denylist,
            settings.roster_sheet,
            settings.duplicate_policy,
        )

    def _read(self, source: RosterRange, default_sheet: str) -> List[List[str]]:
        sheet, _, a1 = source.range.rpartition("!")
        sheet = sheet.strip("'") or default_sheet
        if not sheet:
            raise RosterResolutionFailure(
                f"No tab to read roster range {source.range} ({source.category}) from",
                {"range": source.range, "category": source.category},
            )
        try:
            return self.reader.read_range(sheet, a1)
        except WhiteboardError as exc:
            raise RosterResolutionFailure(
                f"Could not read roster range {source.range} ({source.category})",
                {"range": source.range, "category": source.category, "cause": exc.message},
            ) from exc
        except Exception as exc:
            log.exception("Roster range read failed", extra={"range": source.range})
            raise RosterResolutionFailure(
                f"Could not read roster range {source.range} ({source.category})",
                {"range": source.range, "category": source.category, "cause": str(exc)},
            ) from exc

    def resolve(self, sheet: Optional[str] = None) -> List[Person]:
        """Read every roster range; ranges without a tab prefix use ``sheet`` or ``roster_sheet``."""

        if not self.ranges:
            raise RosterResolutionFailure("No roster ranges are configured.")

        people: List[Person] = []
        seen: Dict[str, Person] = {}
        self.conflicts = []
        skipped = 0

        for source in self.ranges:
            grid = self._read(source, sheet or self.roster_sheet)
            for row in grid:
                for cell in row:
                    name = re.sub(r"\s+", " ", str(cell or "")).strip()
                    if not name:
                        continue
                    if not is_valid_person_name(name, self.denylist):
                        skipped += 1
                        continue

                    key = name.lower()
                    existing = seen.get(key)
                    if existing is None:
                        person = Person(name=name, category=source.category, type=source.type)
                        seen[key] = person
                        people.append(person)
                    elif existing.category != source.category:
                        self.conflicts.append((existing.name, existing.category, source.category))

        if self.conflicts:
            details = {
                "conflicts": [
                    {"name": n, "categories": [first, second]} for n, first, second in self.conflicts
                ]
            }
            if self.duplicate_policy == "error":
                raise RosterConflict(
                    f"{len(self.conflicts)} name(s) appear in more than one roster range", details
                )
            log.warning("Roster names in multiple ranges; keeping first category", extra=details)

        log.info(
            "Roster resolved: %d people from %d ranges (%d cells filtered)",
            len(people),
            len(self.ranges),
            skipped,
        )
        return people
