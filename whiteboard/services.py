"""Per-app wiring of the reader, cache, batch processor and query service."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .batch import TieredBatchProcessor
from .config import SettingsLoader, WhiteboardSettings
from .integrations.google_sheets import build_reader
from .query import QueryService
from .utils.schedule_cache import ScheduleCache

EXTENSION_KEY = "whiteboard"


@dataclass
class Services:
    settings: WhiteboardSettings
    processor: TieredBatchProcessor
    query: QueryService


class ServiceRegistry:
    """Holds the long-lived pieces and rebuilds the rest on descriptor changes."""

    def __init__(self, app, loader: SettingsLoader, reader=None, cache: ScheduleCache = None):
        self.app = app
        self.loader = loader
        self._reader = reader
        self.cache = cache or ScheduleCache.from_app(app)
        self.run_lock = threading.Lock()
        self._lock = threading.Lock()
        self._current = None

    def reader(self, settings: WhiteboardSettings):
        if self._reader is None:
            self._reader = build_reader(self.app.config, settings.grid_range)
        return self._reader

    def get(self) -> Services:
        settings = self.loader.get()
        with self._lock:
            if self._current is None or self._current.settings is not settings:
                processor = TieredBatchProcessor(settings, self.reader(settings), self.cache)
                query = QueryService.from_app(self.app, settings, processor, self.cache)
                self._current = Services(settings=settings, processor=processor, query=query)
            return self._current


def registry_for(app) -> ServiceRegistry:
    return app.extensions[EXTENSION_KEY]
