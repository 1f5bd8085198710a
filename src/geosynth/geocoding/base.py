"""
Abstract base classes for the geocoding system.

Providers are composed from small capability interfaces rather than one
deep hierarchy: a forward geocoder, an intersection resolver, a road network
source and a route provider. A concrete adapter implements whichever
capabilities its backend offers.
"""

from abc import ABC, abstractmethod
from typing import Optional, List

from ..geometry import LatLng
from .models import GeocodedPoint, GeocodeResult, RoadSegment


class Normalizer(ABC):
    """
    Canonical form for street names and addresses.

    Two spellings of the same street ('бул. „Витоша"', 'Витоша') must
    normalize to the same key, and normalizing twice changes nothing.
    """

    @abstractmethod
    def normalize(self, value: str) -> str:
        pass

    def normalize_batch(self, values: List[str]) -> List[str]:
        return [self.normalize(v) for v in values]


class AddressGeocoder(ABC):
    """
    Abstract base for forward geocoders.

    Forward geocoders find coordinates for a free-text address.
    """

    @abstractmethod
    def geocode(self, text: str) -> GeocodeResult:
        """
        Geocode a single address.

        Args:
            text: Address text as written in the announcement

        Returns:
            GeocodeResult with coordinates and metadata
        """
        pass

    def resolve_address(self, text: str) -> Optional[LatLng]:
        """Coordinates for `text`, or None when the provider has no usable answer."""
        return self.geocode(text).coordinates

    def geocode_batch(self, texts: List[str]) -> List[GeocodeResult]:
        """
        Geocode multiple addresses. Default implementation calls geocode()
        for each address, but subclasses can override for efficiency.
        """
        return [self.geocode(t) for t in texts]


class IntersectionResolver(ABC):
    """Finds the crossing point of two named streets."""

    @abstractmethod
    def resolve_intersection(self, street_a: str, street_b: str) -> Optional[LatLng]:
        pass


class RoadNetworkSource(ABC):
    """Supplies the raw geometry of a named street as unordered segments."""

    @abstractmethod
    def fetch_road_segments(self, street_name: str) -> List[RoadSegment]:
        pass


class RouteProvider(ABC):
    """Supplies a driving route between two coordinates."""

    @abstractmethod
    def route_line(self, start: LatLng, end: LatLng) -> Optional[List[LatLng]]:
        pass


class RateLimiter(ABC):
    """Spaces out calls to a provider."""

    @abstractmethod
    def wait(self) -> None:
        """Block until another request may be sent."""


class GeocodeCache(ABC):
    """
    Abstract base for caching resolved locations.

    Reduces redundant API calls within a run. A cached None records a
    definitive miss.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[GeocodedPoint]:
        pass

    @abstractmethod
    def set(self, key: str, value: Optional[GeocodedPoint]) -> None:
        pass

    @abstractmethod
    def __contains__(self, key: str) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all cached values."""
        pass
