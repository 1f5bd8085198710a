"""
OpenStreetMap road network through the Overpass API.

Reference: https://wiki.openstreetmap.org/wiki/Overpass_API/Overpass_QL
"""

import logging
import re
from typing import Any, Optional, List, Sequence

from ..base import RoadNetworkSource
from ..models import RoadSegment, ServiceArea, SOFIA
from ..normalizers import StreetDesignator, StreetNameNormalizer
from ...geometry import LatLng
from ...utils.errors import ProviderUnavailableError
from .http import HttpProvider

logger = logging.getLogger(__name__)

OVERPASS_INSTANCES = (
    "https://overpass.private.coffee/api/interpreter",
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
    "https://overpass-api.de/api/interpreter",
    "https://overpass.osm.jp/api/interpreter",
)

MAIN_HIGHWAYS = "^(primary|secondary|tertiary|trunk)$"
ALL_HIGHWAYS = "^(primary|secondary|tertiary|trunk|residential|unclassified|living_street)$"

# Regex metacharacters escaped in names; "." stays a wildcard so abbreviations still match loosely
_RE_NAME_META = re.compile(r"([\^$|?*+()\[\]{}])")

# Half side of the stand-in segment for a node (square mapped as a point), ~10 m overall
NODE_HALF_EXTENT_DEG = 0.00004


def build_overpass_query(street_name: str, bbox: str, normalizer: Optional[StreetNameNormalizer] = None) -> str:
    """
    Overpass QL for a named street inside `bbox` (south,west,north,east).

    Squares query `place=square` nodes and ways; names carrying the 'ул.'
    designator also match residential, unclassified and living streets;
    everything else is limited to the main highway classes.
    """
    normalizer = normalizer or StreetNameNormalizer()
    name = normalizer.normalize(street_name).replace("\\", "")
    # Backslash doubled: once for the QL string literal, once for the regex
    name = _RE_NAME_META.sub(r"\\\\\1", name)
    designator = StreetDesignator.detect(street_name)

    if designator == StreetDesignator.SQUARE:
        body = "\n".join(
            f'  {kind}["place"="square"]["{tag}"~"{name}",i]({bbox});'
            for tag in ("name", "name:bg")
            for kind in ("node", "way")
        )
    else:
        highways = ALL_HIGHWAYS if designator == StreetDesignator.STREET else MAIN_HIGHWAYS
        body = "\n".join(
            f'  way["highway"~"{highways}"]["{tag}"~"{name}",i]({bbox});'
            for tag in ("name", "name:bg")
        )
    return f"[out:json][timeout:25];\n(\n{body}\n);\nout geom;"


def parse_overpass_elements(elements: Sequence[dict[str, Any]]) -> List[RoadSegment]:
    """Turn Overpass `out geom` elements into road segments."""
    segments: List[RoadSegment] = []
    for element in elements:
        kind = element.get("type")
        if kind == "node" and "lat" in element and "lon" in element:
            lat, lon = float(element["lat"]), float(element["lon"])
            d = NODE_HALF_EXTENT_DEG
            segments.append(RoadSegment(
                (LatLng(lat - d, lon - d), LatLng(lat + d, lon + d)),
                way_id=element.get("id"),
            ))
        elif kind == "way":
            geometry = element.get("geometry") or []
            if len(geometry) < 2:
                continue
            coords = tuple(LatLng(round(float(p["lat"]), 6), round(float(p["lon"]), 6)) for p in geometry)
            segments.append(RoadSegment(coords, way_id=element.get("id")))
    return segments


class OverpassAdapter(HttpProvider, RoadNetworkSource):
    """
    Street geometry from OpenStreetMap.

    Mirrors are tried in order, each with its own timeout; the first one
    that answers wins. When every mirror fails the street is reported as
    having no geometry.
    """

    name = "overpass"

    def __init__(
        self,
        service_area: ServiceArea = SOFIA,
        instances: Sequence[str] = OVERPASS_INSTANCES,
        **http_kwargs: Any,
    ):
        super().__init__(**http_kwargs)
        self.service_area = service_area
        self.instances = list(instances)
        self.normalizer = StreetNameNormalizer()

    def fetch_road_segments(self, street_name: str) -> List[RoadSegment]:
        if not street_name or not self.normalizer.normalize(street_name):
            return []

        query = build_overpass_query(street_name, self.service_area.overpass_bbox, self.normalizer)
        data = None
        for instance in self.instances:
            try:
                data = self._post_json(
                    instance,
                    data={"data": query},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                break
            except ProviderUnavailableError as e:
                logger.info(f"Overpass mirror failed, trying next: {e}")
                continue

        if data is None:
            logger.warning(f"All Overpass instances failed for '{street_name}'")
            return []

        segments = parse_overpass_elements(data.get("elements") or [])
        if not segments:
            logger.info(f"Couldn't find '{street_name}' in OSM")
        else:
            logger.debug(
                f"Found {len(segments)} way segments with "
                f"{sum(len(s) for s in segments)} points for '{street_name}'"
            )
        return segments
