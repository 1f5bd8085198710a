"""
Mapbox Geocoding (v5 places) adapter.

Reference: https://docs.mapbox.com/api/search/geocoding-v5/
"""

import logging
from typing import Any, Optional, Sequence
from urllib.parse import quote

from ..base import AddressGeocoder, IntersectionResolver
from ..models import GeocodeError, GeocodeResult, GeocodeSource, GeocodeStatus, ServiceArea, SOFIA
from ...geometry import LatLng
from ...utils.errors import ProviderUnavailableError
from .http import HttpProvider, params_json

logger = logging.getLogger(__name__)

MAPBOX_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"

ADDRESS_TYPES = ("address,poi",)
# Tried in order until one gives an in-area feature
INTERSECTION_TYPES = ("poi,address", "address")


def _feature_location(feature: dict[str, Any]) -> Optional[LatLng]:
    try:
        lng, lat = feature["geometry"]["coordinates"][:2]
        return LatLng(float(lat), float(lng))
    except (KeyError, TypeError, ValueError):
        return None


class MapboxGeocodingAdapter(HttpProvider, AddressGeocoder, IntersectionResolver):
    """
    Forward geocoding and intersection lookup through Mapbox places search.

    Searches are biased toward the service-area center and limited to one
    country. An intersection is looked up as the text "A и B"; Mapbox has
    no crossing search, so the first in-area feature stands for it.
    """

    name = "mapbox_geocoding"

    def __init__(
        self,
        access_token: Optional[str],
        service_area: ServiceArea = SOFIA,
        url: str = MAPBOX_URL,
        local_context: str = "София",
        country_code: str = "bg",
        **http_kwargs: Any,
    ):
        super().__init__(**http_kwargs)
        self.access_token = access_token
        self.service_area = service_area
        self.url = url.rstrip("/")
        self.local_context = local_context
        self.country_code = country_code

    def _query_text(self, text: str) -> str:
        lowered = text.lower()
        if self.local_context.lower() in lowered or self.service_area.name.lower() in lowered:
            return text
        return f"{text}, {self.local_context}"

    def _search(self, text: str, query: str, types: str) -> GeocodeResult:
        endpoint = f"{self.url}/{quote(query, safe='')}.json"
        center = self.service_area.center
        params = {
            "access_token": self.access_token,
            "types": types,
            "proximity": f"{center.lng},{center.lat}",
            "country": self.country_code,
            "limit": 5,
        }
        try:
            data = self._get_json(endpoint, params=params)
        except ProviderUnavailableError as e:
            return GeocodeResult(
                query=text,
                status=GeocodeStatus.API_ERROR,
                errors=[GeocodeError(
                    endpoint=self.url,
                    http_status=e.http_status,
                    params_json=params_json(params, secret_keys=("access_token",)),
                    body_snippet=e.body_snippet,
                    error_label="unavailable",
                    api_message=e.reason,
                )],
            )

        features = (data or {}).get("features") or []
        if not features:
            logger.info(f"Mapbox found no '{types}' results for '{query}'")
            return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)

        for feature in features:
            coords = _feature_location(feature)
            if coords is None:
                continue
            if self.service_area.contains(coords):
                return GeocodeResult(
                    query=text,
                    status=GeocodeStatus.OK,
                    lat=coords.lat,
                    lng=coords.lng,
                    formatted_address=feature.get("place_name", query),
                    source=GeocodeSource.ADDRESS,
                )
            logger.debug(f"Mapbox result for '{query}' outside {self.service_area.name}: {coords}")

        logger.info(f"All Mapbox results for '{query}' are outside {self.service_area.name}")
        return GeocodeResult(query=text, status=GeocodeStatus.OUT_OF_AREA)

    def _search_types(self, text: str, type_configs: Sequence[str]) -> GeocodeResult:
        if not text or not text.strip():
            return GeocodeResult(query=text or "", status=GeocodeStatus.INVALID_INPUT)
        if not self.access_token:
            logger.error("Mapbox access token is not configured")
            return GeocodeResult(
                query=text,
                status=GeocodeStatus.API_ERROR,
                errors=[GeocodeError(endpoint=self.url, error_label="missing_access_token")],
            )

        query = self._query_text(text.strip())
        result = GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)
        for types in type_configs:
            result = self._search(text, query, types)
            if result.status == GeocodeStatus.OK:
                return result
        return result

    def geocode(self, text: str) -> GeocodeResult:
        return self._search_types(text, ADDRESS_TYPES)

    def resolve_intersection(self, street_a: str, street_b: str) -> Optional[LatLng]:
        result = self._search_types(f"{street_a} и {street_b}", INTERSECTION_TYPES)
        if result.status != GeocodeStatus.OK:
            logger.info(f"Mapbox gave no intersection for '{street_a}' x '{street_b}' ({result.status})")
            return None
        logger.debug(f"Resolved '{street_a}' x '{street_b}' via Mapbox: {result.coordinates}")
        return result.coordinates
