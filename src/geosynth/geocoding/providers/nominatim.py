"""
OpenStreetMap Nominatim forward geocoder.

Reference: https://nominatim.org/release-docs/latest/api/Search/
"""

import logging
from typing import Any, Optional

from ..base import AddressGeocoder
from ..models import GeocodeError, GeocodeResult, GeocodeSource, GeocodeStatus, ServiceArea, SOFIA
from ...geometry import LatLng
from ...utils.errors import ProviderUnavailableError
from .http import HttpProvider, params_json

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"


class NominatimAdapter(HttpProvider, AddressGeocoder):
    """
    Bounded Nominatim search over the service-area viewbox.

    Nominatim's usage policy requires an identifying User-Agent and at most
    one request per second, so this adapter is expected to share the
    Nominatim rate gate.
    """

    name = "nominatim"

    def __init__(
        self,
        service_area: ServiceArea = SOFIA,
        url: str = NOMINATIM_URL,
        user_agent: str = "geosynth/0.1",
        local_context: str = "София, България",
        **http_kwargs: Any,
    ):
        super().__init__(**http_kwargs)
        self.service_area = service_area
        self.url = url
        self.user_agent = user_agent
        self.local_context = local_context

    def _query_text(self, text: str) -> str:
        lowered = text.lower()
        city_names = {self.service_area.name.lower(), self.local_context.split(",")[0].strip().lower()}
        if any(name and name in lowered for name in city_names):
            return text
        return f"{text}, {self.local_context}"

    def geocode(self, text: str) -> GeocodeResult:
        if not text or not text.strip():
            return GeocodeResult(query=text or "", status=GeocodeStatus.INVALID_INPUT)

        query = self._query_text(text.strip())
        params = {
            "q": query,
            "format": "json",
            "limit": 5,
            "addressdetails": 1,
            "bounded": 1,
            "viewbox": self.service_area.viewbox,
        }
        try:
            data = self._get_json(self.url, params=params, headers={"User-Agent": self.user_agent})
        except ProviderUnavailableError as e:
            return GeocodeResult(
                query=text,
                status=GeocodeStatus.API_ERROR,
                errors=[GeocodeError(
                    endpoint=self.url,
                    http_status=e.http_status,
                    params_json=params_json(params),
                    body_snippet=e.body_snippet,
                    error_label="unavailable",
                    api_message=e.reason,
                )],
            )

        if not data:
            logger.info(f"Nominatim found no results for '{query}'")
            return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)

        for candidate in data:
            coords = self._coords(candidate)
            if coords is None:
                continue
            if self.service_area.contains(coords):
                return GeocodeResult(
                    query=text,
                    status=GeocodeStatus.OK,
                    lat=coords.lat,
                    lng=coords.lng,
                    formatted_address=candidate.get("display_name", query),
                    source=GeocodeSource.ADDRESS,
                )
            logger.debug(f"Nominatim result for '{query}' outside {self.service_area.name}: {coords}")

        logger.info(f"All Nominatim results for '{query}' are outside {self.service_area.name}")
        return GeocodeResult(query=text, status=GeocodeStatus.OUT_OF_AREA)

    @staticmethod
    def _coords(candidate: dict[str, Any]) -> Optional[LatLng]:
        try:
            return LatLng(float(candidate["lat"]), float(candidate["lon"]))
        except (KeyError, TypeError, ValueError):
            return None
