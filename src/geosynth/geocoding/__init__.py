"""Geocoding: provider adapters, the provider chain and the router."""

from .base import AddressGeocoder, GeocodeCache, IntersectionResolver, RateLimiter, RoadNetworkSource, RouteProvider
from .cache import InMemoryGeocodeCache
from .models import (
    GeocodedPoint,
    GeocodeError,
    GeocodeResult,
    GeocodeSource,
    GeocodeStatus,
    RoadPath,
    RoadSegment,
    ServiceArea,
    SOFIA,
)
from .normalizers import AddressNormalizer, StreetDesignator, StreetNameNormalizer, normalize_address, normalize_street_name
from .router import (
    BatchGeocodingRouter,
    GeocodingOutcome,
    GeocodingRouter,
    GeocodingStrategy,
    SplitGeocodingRouter,
    intersection_key,
)
from .throttling import NoOpRateLimiter, ProviderFamily, SimpleRateGate

__all__ = [
    "AddressGeocoder",
    "AddressNormalizer",
    "BatchGeocodingRouter",
    "GeocodeCache",
    "GeocodedPoint",
    "GeocodeError",
    "GeocodeResult",
    "GeocodeSource",
    "GeocodeStatus",
    "GeocodingOutcome",
    "GeocodingRouter",
    "GeocodingStrategy",
    "InMemoryGeocodeCache",
    "IntersectionResolver",
    "NoOpRateLimiter",
    "ProviderFamily",
    "RateLimiter",
    "RoadNetworkSource",
    "RoadPath",
    "RoadSegment",
    "RouteProvider",
    "ServiceArea",
    "SimpleRateGate",
    "SOFIA",
    "SplitGeocodingRouter",
    "StreetDesignator",
    "StreetNameNormalizer",
    "intersection_key",
    "normalize_address",
    "normalize_street_name",
]
