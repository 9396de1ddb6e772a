import logging
from datetime import datetime
from typing import Any, Optional, Dict, Tuple

from fantagpt.config import APP_CONFIG

logger = logging.getLogger("fantagpt")


class DataCache:
    """Upstream payloads keyed by URL, each stamped with its fetch time."""

    def __init__(self, cache_duration: Optional[int] = None):
        self.entries: Dict[str, Tuple[Any, datetime]] = {}
        self.cache_duration = cache_duration if cache_duration is not None else APP_CONFIG["fpl_api"].cache_seconds

    def is_stale(self, url: str) -> bool:
        entry = self.entries.get(url)
        return entry is None or (datetime.now() - entry[1]).total_seconds() > self.cache_duration

    def get(self, url: str) -> Optional[Any]:
        """Cached payload if fresh, else None."""
        if self.is_stale(url):
            return None
        return self.entries[url][0]

    def get_any(self, url: str) -> Optional[Any]:
        """Cached payload regardless of age, for serving stale data when upstream is down."""
        entry = self.entries.get(url)
        return entry[0] if entry else None

    def set(self, url: str, data: Any):
        self.entries[url] = (data, datetime.now())

    def clear_stale(self):
        """Drop entries well past their TTL to keep memory bounded."""
        now = datetime.now()
        stale = [
            url for url, (_, ts) in self.entries.items()
            if (now - ts).total_seconds() > self.cache_duration * 2
        ]
        for url in stale:
            self.entries.pop(url, None)
        if stale:
            logger.info(f"Evicted {len(stale)} stale cache entries")

    def clear(self):
        self.entries.clear()


cache = DataCache()
