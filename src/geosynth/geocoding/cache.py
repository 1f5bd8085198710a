"""In-process memo cache for resolved locations."""

from typing import Optional

from .models import GeocodedPoint
from .base import GeocodeCache


class InMemoryGeocodeCache(GeocodeCache):
    """
    Dictionary-backed cache, scoped to whatever owns it (normally one run).

    A stored None is a remembered miss; `key in cache` distinguishes it from
    a key that was never looked up.
    """

    def __init__(self):
        self._entries: dict[str, Optional[GeocodedPoint]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[GeocodedPoint]:
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        return None

    def set(self, key: str, value: Optional[GeocodedPoint]) -> None:
        self._entries[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
