"""
Core data models for geocoding operations.

These immutable, frozen dataclasses serve as the contract between
the provider adapters, the router and the feature converter.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional, List

from ..geometry import LatLng


class GeocodeSource(StrEnum):
    """How a coordinate was obtained."""
    ADDRESS = "address"
    INTERSECTION = "intersection"
    FALLBACK = "fallback"
    CACHE = "cache"
    NONE = "none"


class GeocodeStatus(StrEnum):
    """Status of a geocode request."""
    OK = "ok"
    NOT_FOUND = "not_found"
    OUT_OF_AREA = "out_of_area"
    INVALID_INPUT = "invalid_input"
    API_ERROR = "api_error"
    CACHED = "cached"


@dataclass(frozen=True)
class GeocodeError:
    """Details of an API error during geocoding."""
    endpoint: str
    http_status: Optional[int] = None
    params_json: str = ""
    body_snippet: str = ""
    error_label: str = ""
    api_message: Optional[str] = None


@dataclass(frozen=True)
class ServiceArea:
    """
    The city the engine works in.

    Every coordinate handed out by the router must fall inside the bounds.
    The center is the reference point used to pick between several
    candidate intersections.
    """
    name: str
    country: str
    south: float
    west: float
    north: float
    east: float
    center: LatLng

    def contains(self, point: LatLng) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lng <= self.east

    @property
    def overpass_bbox(self) -> str:
        """south,west,north,east"""
        return f"{self.south},{self.west},{self.north},{self.east}"

    @property
    def viewbox(self) -> str:
        """west,south,east,north (Nominatim order)"""
        return f"{self.west},{self.south},{self.east},{self.north}"

    @classmethod
    def from_settings(cls, settings) -> "ServiceArea":
        return cls(
            name=settings.service_area_name,
            country=settings.service_area_country,
            south=settings.bounds_south,
            west=settings.bounds_west,
            north=settings.bounds_north,
            east=settings.bounds_east,
            center=LatLng(settings.center_lat, settings.center_lng),
        )


SOFIA = ServiceArea(
    name="Sofia",
    country="Bulgaria",
    south=42.605,
    west=23.188,
    north=42.788,
    east=23.528,
    center=LatLng(42.6977, 23.3219),
)


@dataclass(frozen=True)
class GeocodeResult:
    """
    The result of a geocoding operation.

    Immutable result containing coordinates, metadata, and any errors
    encountered during the geocoding process.
    """
    query: str
    status: GeocodeStatus = GeocodeStatus.NOT_FOUND
    lat: Optional[float] = None
    lng: Optional[float] = None
    formatted_address: str = ""
    source: GeocodeSource = GeocodeSource.NONE
    errors: List[GeocodeError] = field(default_factory=list)

    def is_success(self) -> bool:
        """
        Check if geocoding was successful.

        Validates that both coordinates exist and are within valid geographic ranges.
        """
        if self.lng is None or self.lat is None:
            return False
        try:
            return -90 <= self.lat <= 90 and -180 <= self.lng <= 180
        except (TypeError, ValueError):
            return False

    @property
    def coordinates(self) -> Optional[LatLng]:
        if not self.is_success():
            return None
        return LatLng(self.lat, self.lng)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "query": self.query,
            "lat": self.lat,
            "lng": self.lng,
            "formatted_address": self.formatted_address,
            "source": self.source.value,
            "status": self.status.value,
            "errors": [
                {
                    "endpoint": e.endpoint,
                    "http_status": e.http_status,
                    "error_label": e.error_label,
                    "api_message": e.api_message,
                }
                for e in self.errors
            ],
        }


@dataclass(frozen=True)
class GeocodedPoint:
    """A resolved location, keyed in the router mapping by its original text."""
    original_text: str
    formatted_address: str
    coordinates: LatLng
    source: GeocodeSource = GeocodeSource.ADDRESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_text": self.original_text,
            "formatted_address": self.formatted_address,
            "coordinates": {"lat": self.coordinates.lat, "lng": self.coordinates.lng},
            "source": self.source.value,
        }


@dataclass(frozen=True)
class RoadSegment:
    """An ordered polyline fragment of a street as returned by the road network."""
    coordinates: tuple[LatLng, ...]
    way_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.coordinates)

    @property
    def first(self) -> LatLng:
        return self.coordinates[0]

    @property
    def last(self) -> LatLng:
        return self.coordinates[-1]

    def reversed(self) -> "RoadSegment":
        return RoadSegment(tuple(reversed(self.coordinates)), self.way_id)


@dataclass(frozen=True)
class RoadPath:
    """An ordered, stitched sequence of road segments."""
    segments: tuple[RoadSegment, ...]

    @property
    def coordinates(self) -> list[LatLng]:
        """Flattened coordinates, dropping the repeated joint between consecutive segments."""
        coords: list[LatLng] = []
        for seg in self.segments:
            for c in seg.coordinates:
                if coords and coords[-1] == c:
                    continue
                coords.append(c)
        return coords

    def __len__(self) -> int:
        return len(self.segments)
