"""
Google Maps Platform adapters: forward geocoding and directions.

Reference: https://developers.google.com/maps/documentation/geocoding
           https://developers.google.com/maps/documentation/directions
"""

import logging
from typing import Any, Optional, List

from ..base import AddressGeocoder, IntersectionResolver, RouteProvider
from ..models import GeocodeError, GeocodeResult, GeocodeSource, GeocodeStatus, ServiceArea, SOFIA
from ..normalizers import AddressNormalizer
from ...geometry import LatLng
from ...utils.errors import ProviderUnavailableError
from .http import HttpProvider, params_json

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

_LOCALITY_TYPES = ("locality", "administrative_area_level_1")


def decode_polyline(encoded: str, precision: int = 5) -> List[LatLng]:
    """Decode a Google encoded polyline into coordinates."""
    coords: List[LatLng] = []
    index = lat = lng = 0
    factor = 10 ** precision

    def next_value() -> int:
        nonlocal index
        shift = result = 0
        while True:
            b = ord(encoded[index]) - 63
            index += 1
            result |= (b & 0x1F) << shift
            shift += 5
            if b < 0x20:
                break
        return ~(result >> 1) if result & 1 else result >> 1

    while index < len(encoded):
        lat += next_value()
        lng += next_value()
        coords.append(LatLng(lat / factor, lng / factor))
    return coords


def _matches_locality(candidate: dict[str, Any], locality: str) -> bool:
    for comp in candidate.get("address_components") or []:
        types = comp.get("types") or []
        if any(t in types for t in _LOCALITY_TYPES) and locality in str(comp.get("long_name", "")).lower():
            return True
    return False


def _location(candidate: dict[str, Any]) -> Optional[LatLng]:
    try:
        loc = candidate["geometry"]["location"]
        return LatLng(float(loc["lat"]), float(loc["lng"]))
    except (KeyError, TypeError, ValueError):
        return None


class GoogleGeocodingAdapter(HttpProvider, AddressGeocoder):
    """
    Forward geocoding through the Google Geocoding API.

    Only candidates inside the service area are considered. Among those, the
    first one whose locality (or first-level administrative area) names the
    city wins; otherwise the first in-area candidate is used.
    """

    name = "google_geocoding"

    def __init__(self, api_key: Optional[str], service_area: ServiceArea = SOFIA, **http_kwargs: Any):
        super().__init__(**http_kwargs)
        self.api_key = api_key
        self.service_area = service_area
        self.address_normalizer = AddressNormalizer(service_area.name, service_area.country)

    def geocode(self, text: str) -> GeocodeResult:
        if not text or not text.strip():
            return GeocodeResult(query=text or "", status=GeocodeStatus.INVALID_INPUT)
        if not self.api_key:
            logger.error("Google Maps API key is not configured")
            return GeocodeResult(
                query=text,
                status=GeocodeStatus.API_ERROR,
                errors=[GeocodeError(endpoint=GEOCODE_URL, error_label="missing_api_key")],
            )

        query = self.address_normalizer.normalize(text)
        params = {"address": query, "key": self.api_key}
        try:
            data = self._get_json(GEOCODE_URL, params=params)
        except ProviderUnavailableError as e:
            return GeocodeResult(
                query=text,
                status=GeocodeStatus.API_ERROR,
                errors=[GeocodeError(
                    endpoint=GEOCODE_URL,
                    http_status=e.http_status,
                    params_json=params_json(params),
                    body_snippet=e.body_snippet,
                    error_label="unavailable",
                    api_message=e.reason,
                )],
            )

        status = (data or {}).get("status")
        if status == "ZERO_RESULTS":
            return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)
        if status != "OK":
            logger.warning(f"Google geocoding returned {status} for '{query}': {data.get('error_message', '')}")
            return GeocodeResult(
                query=text,
                status=GeocodeStatus.API_ERROR,
                errors=[GeocodeError(
                    endpoint=GEOCODE_URL,
                    http_status=200,
                    params_json=params_json(params),
                    error_label=str(status).lower(),
                    api_message=data.get("error_message"),
                )],
            )

        candidate = self._pick_candidate(data.get("results") or [])
        if candidate is None:
            logger.info(f"No in-area result for '{query}'")
            return GeocodeResult(query=text, status=GeocodeStatus.OUT_OF_AREA)

        coords = _location(candidate)
        return GeocodeResult(
            query=text,
            status=GeocodeStatus.OK,
            lat=coords.lat,
            lng=coords.lng,
            formatted_address=candidate.get("formatted_address", query),
            source=GeocodeSource.ADDRESS,
        )

    def _pick_candidate(self, results: List[dict[str, Any]]) -> Optional[dict[str, Any]]:
        in_area = []
        for res in results:
            coords = _location(res)
            if coords is not None and self.service_area.contains(coords):
                in_area.append(res)
        if not in_area:
            return None
        locality = self.service_area.name.lower()
        for res in in_area:
            if _matches_locality(res, locality):
                return res
        return in_area[0]


class GoogleDirectionsAdapter(HttpProvider, AddressGeocoder, IntersectionResolver, RouteProvider):
    """
    Intersection resolution and route centerlines through the Directions API.

    The intersection of A and B is taken as the end of the first step of a
    driving route from A to B, which is where the route turns onto B. When
    no route comes back, the geocoder is asked for "A and B".
    """

    name = "google_directions"

    def __init__(
        self,
        api_key: Optional[str],
        geocoder: Optional[AddressGeocoder] = None,
        service_area: ServiceArea = SOFIA,
        **http_kwargs: Any,
    ):
        super().__init__(**http_kwargs)
        self.api_key = api_key
        self.service_area = service_area
        self.geocoder = geocoder
        self.address_normalizer = AddressNormalizer(service_area.name, service_area.country)

    def geocode(self, text: str) -> GeocodeResult:
        if self.geocoder is None:
            return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)
        return self.geocoder.geocode(text)

    def _directions(self, origin: str, destination: str) -> Optional[dict[str, Any]]:
        if not self.api_key:
            logger.error("Google Maps API key is not configured")
            return None
        params = {"origin": origin, "destination": destination, "mode": "driving", "key": self.api_key}
        try:
            data = self._get_json(DIRECTIONS_URL, params=params)
        except ProviderUnavailableError as e:
            logger.warning(f"Directions request failed: {e}")
            return None
        if (data or {}).get("status") != "OK" or not data.get("routes"):
            logger.info(f"No route from '{origin}' to '{destination}' ({(data or {}).get('status')})")
            return None
        return data["routes"][0]

    def resolve_intersection(self, street_a: str, street_b: str) -> Optional[LatLng]:
        route = self._directions(
            self.address_normalizer.normalize(street_a),
            self.address_normalizer.normalize(street_b),
        )
        if route is not None:
            try:
                end = route["legs"][0]["steps"][0]["end_location"]
                point = LatLng(float(end["lat"]), float(end["lng"]))
            except (KeyError, IndexError, TypeError, ValueError):
                point = None
            if point is not None and self.service_area.contains(point):
                logger.debug(f"Resolved '{street_a}' x '{street_b}' via directions: {point}")
                return point

        logger.info(f"Directions gave no intersection for '{street_a}' x '{street_b}', geocoding instead")
        return self.resolve_address(f"{street_a} and {street_b}")

    def route_line(self, start: LatLng, end: LatLng) -> Optional[List[LatLng]]:
        route = self._directions(f"{start.lat},{start.lng}", f"{end.lat},{end.lng}")
        if route is None:
            return None
        encoded = (route.get("overview_polyline") or {}).get("points")
        if not encoded:
            logger.warning("Route response carries no polyline")
            return None
        coords = decode_polyline(encoded)
        return coords if len(coords) >= 2 else None
