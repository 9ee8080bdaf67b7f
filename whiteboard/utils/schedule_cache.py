"""Disk-backed cache for computed schedules.

Every key maps to one pickle file in ``CACHE_DIR`` holding a small dict
of basic data types (``key``, ``expires_at``, ``payload``) so it can be
shared across workers.  The payload itself is the JSON wire string of a
schedule or tier bundle; its length is what counts against the per-entry
capacity.

Writes are overwrite-on-write with no cross-key transaction: the last
writer wins for each key.  Expired entries read as misses and are
removed on the way out.
"""

from __future__ import annotations

import hashlib
import logging
import os
import pickle
import re
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

from ..errors import CacheWriteFailure
from ..models import SCHEMA_VERSION

log = logging.getLogger(__name__)

MAX_TTL_SECONDS = 6 * 60 * 60
BULK = "bulk"

CACHE_DIR = Path(__file__).resolve().parent.parent / "cache"


def cache_key(scope: str, subject: str, version: str = SCHEMA_VERSION) -> str:
    """``schedule_{tierOrSheetName}_{personOrBulk}_{schemaVersion}``"""

    return f"schedule_{scope}_{subject}_{version}"


def person_subject(name: str) -> str:
    return re.sub(r"\s+", " ", name or "").strip().lower()


def _filename(key: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", key.lower()).strip("-")[:80]
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]
    return f"{slug}-{digest}.pkl"


class ScheduleCache:
    def __init__(
        self,
        cache_dir: Optional[str] = None,
        max_entry_bytes: int = 5 * 1024 * 1024,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = str(cache_dir or CACHE_DIR)
        self.max_entry_bytes = max_entry_bytes
        self.clock = clock
        os.makedirs(self.cache_dir, exist_ok=True)

    @classmethod
    def from_app(cls, app) -> "ScheduleCache":
        return cls(
            cache_dir=app.config.get("CACHE_DIR", str(CACHE_DIR)),
            max_entry_bytes=int(app.config.get("CACHE_MAX_ENTRY_KB", 5120)) * 1024,
        )

    def _path(self, key: str) -> str:
        return os.path.join(self.cache_dir, _filename(key))

    def put(self, key: str, payload: str, ttl_seconds: int) -> int:
        """Store ``payload`` under ``key``; returns the payload size in bytes."""

        size = len(payload.encode("utf-8"))
        if size > self.max_entry_bytes:
            raise CacheWriteFailure(
                f"Cache entry {key} is {size} bytes (limit {self.max_entry_bytes})",
                {"key": key, "bytes": size},
            )

        ttl = max(1, min(int(ttl_seconds), MAX_TTL_SECONDS))
        entry = {"key": key, "expires_at": self.clock() + ttl, "payload": payload}
        path = self._path(key)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
            with os.fdopen(fd, "wb") as fh:
                pickle.dump(entry, fh)
            os.replace(tmp_path, path)
        except (OSError, pickle.PicklingError) as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            log.exception("Cache write failed for %s", key)
            raise CacheWriteFailure(f"Cache write failed for {key}", {"key": key, "cause": str(exc)}) from exc

        log.debug("Cache entry written", extra={"key": key, "bytes": size, "ttl": ttl})
        return size

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            with open(path, "rb") as fh:
                entry = pickle.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, pickle.UnpicklingError, EOFError):
            log.exception("Error reading cache %s; treating as miss", key)
            return None

        if entry.get("key") != key:
            return None
        if entry.get("expires_at", 0) <= self.clock():
            log.debug("Cache entry expired", extra={"key": key})
            self.delete(key)
            return None
        return entry.get("payload")

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
