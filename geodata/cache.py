"""In-memory result cache keyed by rounded request parameters."""

import logging
import threading

logger = logging.getLogger(__name__)


def download_key(lat: float, lon: float, radius: float, *toggles) -> str:
    """Key for a download: 6-decimal coordinates, 1-decimal radius, toggles."""
    parts = [f"{lat:.6f}", f"{lon:.6f}", f"{radius:.1f}"]
    parts.extend(str(t) for t in toggles)
    return "_".join(parts)


def terrain_key(lat: float, lon: float, radius: float,
                resolution: int, z_scale: float) -> str:
    return f"{lat:.6f}_{lon:.6f}_{radius:.1f}_{resolution}_{z_scale:.2f}"


class ResultCache:
    """Key/value store owned by whoever issues the requests.

    Writes are last-writer-wins and ``clear`` drops everything.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._data: dict = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str):
        if not self.enabled:
            return None
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self.misses += 1
            else:
                self.hits += 1
        if value is not None:
            logger.info(f"Cache hit: {key}")
        return value

    def put(self, key: str, value) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._data[key] = value

    def clear(self) -> None:
        with self._lock:
            count = len(self._data)
            self._data.clear()
        logger.info(f"Cleared {count} cached results")

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
