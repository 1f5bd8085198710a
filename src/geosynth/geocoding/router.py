"""
Geocoding router.

Turns every location text of an extraction into coordinates, through the
provider chain selected by the configured strategy:

  batch  every distinct address goes through one forward geocoder
  split  pins through the pin provider, street endpoints as intersections
         through the street provider, leftovers through the fallback
         forward geocoder

A single failed address never aborts the run; it is left out of the
mapping and logged.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Optional, Type

from ..extraction import LocationExtraction
from ..geometry import LatLng
from .base import AddressGeocoder, GeocodeCache, IntersectionResolver
from .cache import InMemoryGeocodeCache
from .models import GeocodedPoint, GeocodeSource, GeocodeStatus, ServiceArea, SOFIA
from .normalizers import normalize_address

logger = logging.getLogger(__name__)

# Misses worth remembering; API errors are retried on the next lookup
_DEFINITIVE_MISSES = (GeocodeStatus.NOT_FOUND, GeocodeStatus.OUT_OF_AREA)


class GeocodingStrategy(StrEnum):
    BATCH = "batch"
    SPLIT = "split"


def intersection_key(street_name: str, endpoint: str) -> str:
    return f"{street_name} ∩ {endpoint}"


@dataclass
class GeocodingOutcome:
    """Coordinates keyed by location text, plus how each street endpoint was resolved."""
    points: dict[str, GeocodedPoint] = field(default_factory=dict)
    methods: dict[str, GeocodeSource] = field(default_factory=dict)

    def __contains__(self, key: str) -> bool:
        return key in self.points

    def __len__(self) -> int:
        return len(self.points)


class GeocodingRouter(ABC):
    """Abstract base for routing strategies.

    Subclasses set a STRATEGY and implement `geocode()`. They register
    themselves, so `GeocodingRouter.for_strategy('split')` finds the class.
    """

    STRATEGY: ClassVar[GeocodingStrategy]

    _REGISTRY: ClassVar[dict[str, Type['GeocodingRouter']]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "STRATEGY" in cls.__dict__:
            key = str(cls.STRATEGY).lower()
            if key in GeocodingRouter._REGISTRY and GeocodingRouter._REGISTRY[key] is not cls:
                raise RuntimeError(f"Duplicate router STRATEGY '{key}' for {cls.__name__}")
            GeocodingRouter._REGISTRY[key] = cls
            logger.debug(f"Registered GeocodingRouter: {cls.__name__} as '{key}'")

    @classmethod
    def for_strategy(cls, strategy: str) -> Type['GeocodingRouter']:
        key = str(strategy).lower()
        try:
            return cls._REGISTRY[key]
        except KeyError as e:
            raise ValueError(
                f"Unknown strategy '{strategy}'. "
                f"Known strategies: {sorted(cls._REGISTRY.keys())}"
            ) from e

    def __init__(self, service_area: ServiceArea = SOFIA, cache: Optional[GeocodeCache] = None):
        self.service_area = service_area
        self.cache = cache if cache is not None else InMemoryGeocodeCache()

    @abstractmethod
    def geocode(self, extraction: LocationExtraction) -> GeocodingOutcome:
        ...

    def _forward(self, geocoder: AddressGeocoder, text: str) -> Optional[GeocodedPoint]:
        """Forward-geocode one address through the cache."""
        key = f"{getattr(geocoder, 'name', type(geocoder).__name__)}|{normalize_address(text, self.service_area.name, self.service_area.country)}"
        if key in self.cache:
            cached = self.cache.get(key)
            if cached is None:
                return None
            return GeocodedPoint(text, cached.formatted_address, cached.coordinates, GeocodeSource.CACHE)

        result = geocoder.geocode(text)
        coords = result.coordinates
        if coords is not None and not self.service_area.contains(coords):
            logger.info(f"Discarding out-of-area result for '{text}': {coords}")
            self.cache.set(key, None)
            return None
        if coords is None:
            if result.status in _DEFINITIVE_MISSES:
                self.cache.set(key, None)
            return None

        point = GeocodedPoint(text, result.formatted_address or text, coords, GeocodeSource.ADDRESS)
        self.cache.set(key, point)
        return point

    def _intersection(self, resolver: IntersectionResolver, street_name: str, endpoint: str) -> Optional[LatLng]:
        qualified = intersection_key(street_name, endpoint)
        key = f"{getattr(resolver, 'name', type(resolver).__name__)}|{qualified}"
        if key in self.cache:
            cached = self.cache.get(key)
            return cached.coordinates if cached else None
        coords = resolver.resolve_intersection(street_name, endpoint)
        if coords is not None and not self.service_area.contains(coords):
            logger.info(f"Discarding out-of-area intersection '{qualified}': {coords}")
            return None
        if coords is not None:
            self.cache.set(key, GeocodedPoint(endpoint, qualified, coords, GeocodeSource.INTERSECTION))
        return coords


class BatchGeocodingRouter(GeocodingRouter):
    """Every distinct location text through one forward geocoder."""

    STRATEGY = GeocodingStrategy.BATCH

    def __init__(self, geocoder: AddressGeocoder, **kwargs: Any):
        super().__init__(**kwargs)
        self.geocoder = geocoder

    def geocode(self, extraction: LocationExtraction) -> GeocodingOutcome:
        outcome = GeocodingOutcome()
        addresses = extraction.addresses()
        logger.info(f"Collected {len(addresses)} unique addresses to geocode")

        for text in addresses:
            point = self._forward(self.geocoder, text)
            if point is None:
                logger.warning(f"Failed to geocode '{text}'")
                continue
            outcome.points[text] = point

        logger.info(f"Successfully geocoded {len(outcome)}/{len(addresses)} addresses")
        return outcome


class SplitGeocodingRouter(GeocodingRouter):
    """
    Pins, street intersections and fallbacks through separate providers.

    Intersection results are stored under both the street-qualified key
    ("<street> ∩ <endpoint>") and the bare endpoint text; the bare key never
    overwrites an earlier entry. Fallback results for an endpoint are stored
    under the qualified key too, so that a cross street resolved on another
    street is never reused for this one.
    """

    STRATEGY = GeocodingStrategy.SPLIT

    def __init__(
        self,
        pin_geocoder: AddressGeocoder,
        street_resolver: IntersectionResolver,
        fallback_geocoder: Optional[AddressGeocoder] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.pin_geocoder = pin_geocoder
        self.street_resolver = street_resolver
        self.fallback_geocoder = fallback_geocoder

    def geocode(self, extraction: LocationExtraction) -> GeocodingOutcome:
        outcome = GeocodingOutcome()

        # Pins
        for pin in extraction.pins:
            if pin.address in outcome.points:
                continue
            point = self._forward(self.pin_geocoder, pin.address)
            if point is None:
                logger.warning(f"Failed to geocode pin '{pin.address}'")
                continue
            outcome.points[pin.address] = point

        # Street endpoints as intersections
        pending: list[tuple[str, str]] = []
        for street in extraction.streets:
            for endpoint in street.endpoints:
                qualified = intersection_key(street.street_name, endpoint)
                if qualified in outcome.points or (street.street_name, endpoint) in pending:
                    continue
                coords = self._intersection(self.street_resolver, street.street_name, endpoint)
                if coords is None:
                    pending.append((street.street_name, endpoint))
                    continue
                point = GeocodedPoint(endpoint, qualified, coords, GeocodeSource.INTERSECTION)
                outcome.points[qualified] = point
                outcome.points.setdefault(endpoint, point)
                outcome.methods[qualified] = GeocodeSource.INTERSECTION

        if pending:
            logger.info(f"{len(pending)} street endpoints not found as intersections, trying fallback geocoding")

        # Fallback through the forward geocoder
        for street_name, endpoint in pending:
            qualified = intersection_key(street_name, endpoint)
            point = self._forward(self.fallback_geocoder, endpoint) if self.fallback_geocoder else None
            if point is None:
                logger.warning(f"Failed to resolve endpoint '{endpoint}' of '{street_name}'")
                continue
            point = GeocodedPoint(endpoint, point.formatted_address, point.coordinates, GeocodeSource.FALLBACK)
            outcome.points[qualified] = point
            outcome.points.setdefault(endpoint, point)
            outcome.methods[qualified] = GeocodeSource.FALLBACK
            logger.debug(f"Fallback geocoded '{endpoint}' -> {point.coordinates}")

        return outcome
