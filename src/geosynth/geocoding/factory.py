"""
Builds the provider chain from settings.

Provider kinds and strategies are closed enumerations resolved once here;
nothing downstream inspects configuration strings.
"""

import logging
from enum import StrEnum
from typing import Any, Optional

import requests

from ..geometry import LocalProjection
from .base import AddressGeocoder, GeocodeCache, IntersectionResolver
from .models import ServiceArea
from .providers import (
    GoogleDirectionsAdapter,
    GoogleGeocodingAdapter,
    MapboxGeocodingAdapter,
    NominatimAdapter,
    OverpassAdapter,
)
from .router import GeocodingRouter, GeocodingStrategy
from .throttling import ProviderFamily, build_rate_gates

logger = logging.getLogger(__name__)


class ProviderKind(StrEnum):
    GOOGLE_GEOCODING = "google_geocoding"
    NOMINATIM = "nominatim"
    GOOGLE_DIRECTIONS = "google_directions"
    MAPBOX = "mapbox_geocoding"
    OVERPASS = "overpass"


class ProviderRegistry:
    """
    Lazily built, shared provider instances for one configuration.

    Instances are reused so that a provider used in two roles (for example
    the Overpass resolver for intersections and for centerlines) shares its
    memoized street geometry and its rate gate.
    """

    def __init__(self, settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.service_area = ServiceArea.from_settings(settings)
        self.projection = LocalProjection(settings.proj_crs)
        self.gates = build_rate_gates(settings)
        self._instances: dict[ProviderKind, Any] = {}

    def _http_kwargs(self, family: ProviderFamily) -> dict[str, Any]:
        return {
            "session": self.session,
            "timeout": self.settings.request_timeout_s,
            "rate_limiter": self.gates[family],
        }

    def get(self, kind: str) -> Any:
        kind = ProviderKind(kind)
        if kind not in self._instances:
            self._instances[kind] = self._build(kind)
            logger.info(f"Initialized provider: {kind}")
        return self._instances[kind]

    def _build(self, kind: ProviderKind) -> Any:
        s = self.settings
        if kind == ProviderKind.GOOGLE_GEOCODING:
            return GoogleGeocodingAdapter(
                s.get_google_api_key(), self.service_area, **self._http_kwargs(ProviderFamily.GOOGLE)
            )
        if kind == ProviderKind.NOMINATIM:
            return NominatimAdapter(
                self.service_area,
                url=s.nominatim_url,
                user_agent=s.nominatim_user_agent,
                **self._http_kwargs(ProviderFamily.NOMINATIM),
            )
        if kind == ProviderKind.GOOGLE_DIRECTIONS:
            return GoogleDirectionsAdapter(
                s.get_google_api_key(),
                geocoder=self.get(ProviderKind.GOOGLE_GEOCODING),
                service_area=self.service_area,
                **self._http_kwargs(ProviderFamily.GOOGLE),
            )
        if kind == ProviderKind.MAPBOX:
            return MapboxGeocodingAdapter(
                s.get_mapbox_access_token(),
                self.service_area,
                url=s.mapbox_url,
                **self._http_kwargs(ProviderFamily.MAPBOX),
            )
        if kind == ProviderKind.OVERPASS:
            # Imported here: the streets package builds on the geocoding package
            from ..streets import StreetGeometryResolver

            network = OverpassAdapter(
                self.service_area, instances=s.overpass_instances, **self._http_kwargs(ProviderFamily.OVERPASS)
            )
            return StreetGeometryResolver(
                network,
                projection=self.projection,
                service_area=self.service_area,
                buffer_m=s.intersection_buffer_m,
                max_gap_m=s.intersection_max_gap_m,
                match_tolerance_m=s.stitch_match_tolerance_m,
                end_tolerance_m=s.stitch_end_tolerance_m,
                max_segments=s.max_stitch_segments,
                address_geocoder=self.get(ProviderKind.NOMINATIM),
            )
        raise ValueError(f"Unsupported provider kind '{kind}'")

    def address_geocoder(self, kind: str) -> AddressGeocoder:
        provider = self.get(kind)
        if not isinstance(provider, AddressGeocoder):
            raise ValueError(f"Provider '{kind}' cannot geocode addresses")
        return provider

    def intersection_resolver(self, kind: str) -> IntersectionResolver:
        provider = self.get(kind)
        if not isinstance(provider, IntersectionResolver):
            raise ValueError(
                f"Provider '{kind}' cannot resolve intersections. "
                f"Use one of: {[ProviderKind.GOOGLE_DIRECTIONS.value, ProviderKind.MAPBOX.value, ProviderKind.OVERPASS.value]}"
            )
        return provider


def build_router(registry: ProviderRegistry, cache: Optional[GeocodeCache] = None) -> GeocodingRouter:
    """The router for the configured strategy, wired to its providers."""
    s = registry.settings
    strategy = GeocodingStrategy(s.strategy)
    router_cls = GeocodingRouter.for_strategy(strategy)
    common = {"service_area": registry.service_area, "cache": cache}

    if strategy == GeocodingStrategy.BATCH:
        return router_cls(registry.address_geocoder(s.pin_provider), **common)
    return router_cls(
        pin_geocoder=registry.address_geocoder(s.pin_provider),
        street_resolver=registry.intersection_resolver(s.street_provider),
        fallback_geocoder=registry.address_geocoder(s.fallback_provider),
        **common,
    )
