"""
Rate limiting for provider calls.

Every provider family (Google, Mapbox, Nominatim, Overpass) gets one gate
that enforces a fixed minimum delay between consecutive calls, whatever the
outcome of the previous call.
"""

from __future__ import annotations

import logging
import time
import threading
from enum import StrEnum

from .base import RateLimiter

logger = logging.getLogger(__name__)


class ProviderFamily(StrEnum):
    GOOGLE = "google"
    MAPBOX = "mapbox"
    NOMINATIM = "nominatim"
    OVERPASS = "overpass"


class SimpleRateGate(RateLimiter):
    """
    Minimum-delay gate shared by all adapters of one provider family.

    The lock keeps the spacing correct if calls are ever made from threads.
    """

    def __init__(self, min_delay_s: float, family: str = ""):
        if min_delay_s <= 0:
            raise ValueError("min_delay_s must be > 0")

        self.min_delay_s = float(min_delay_s)
        self.family = family
        self.waits = 0
        self._next_slot = time.perf_counter()
        self._lock = threading.Lock()

    @classmethod
    def from_delay(cls, min_delay_s: float, family: str = "") -> RateLimiter:
        """A non-positive delay disables the gate."""
        if min_delay_s <= 0:
            return NoOpRateLimiter()
        return cls(min_delay_s, family)

    def wait(self) -> None:
        with self._lock:
            now = time.perf_counter()
            pause = self._next_slot - now
            if pause > 0:
                self.waits += 1
                logger.debug(f"Rate gate {self.family or '?'}: sleeping {pause:.3f}s")
                time.sleep(pause)
                now = time.perf_counter()
            self._next_slot = now + self.min_delay_s


class NoOpRateLimiter(RateLimiter):
    """Never waits. Used when a family's delay is configured as zero."""

    def wait(self) -> None:
        pass


def build_rate_gates(settings) -> dict[ProviderFamily, RateLimiter]:
    """One shared gate per provider family, from the configured minimum delays."""
    delays = {
        ProviderFamily.GOOGLE: settings.min_delay_google_s,
        ProviderFamily.MAPBOX: settings.min_delay_mapbox_s,
        ProviderFamily.NOMINATIM: settings.min_delay_nominatim_s,
        ProviderFamily.OVERPASS: settings.min_delay_overpass_s,
    }
    return {family: SimpleRateGate.from_delay(delay, family.value) for family, delay in delays.items()}
