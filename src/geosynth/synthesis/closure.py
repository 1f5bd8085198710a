"""
Closure polygons for street sections.

A closed street section becomes a polygon of the street's width around its
centerline. Offsets are computed in a local flat-earth frame at the
service-area latitude, with separate meters-per-degree factors for latitude
and longitude.
"""

from __future__ import annotations

import logging
import re
from enum import StrEnum
from typing import Optional, Mapping, Sequence

import numpy as np
from shapely.geometry import LineString, Polygon
from shapely.geometry.polygon import orient

from ..extraction import StreetSection
from ..geocoding.base import RouteProvider
from ..geometry import LatLng, meters_per_degree, planar_area_m2
from .features import FeatureType, GeoFeature

logger = logging.getLogger(__name__)


class StreetClass(StrEnum):
    BOULEVARD = "boulevard"
    AVENUE = "avenue"
    RESIDENTIAL = "residential"


class CenterlineSource(StrEnum):
    NETWORK = "network"
    ROUTING = "routing"
    STRAIGHT = "straight"


DEFAULT_HALF_WIDTHS: dict[str, float] = {
    StreetClass.BOULEVARD: 13.0,
    StreetClass.AVENUE: 9.0,
    StreetClass.RESIDENTIAL: 7.0,
}

_BOULEVARD_TOKENS = ("boulevard", "булевард", "бул.", "blvd", "bul.")
_AVENUE_TOKENS = ("avenue", "проспект", "collector")


def _token_pattern(tokens: Sequence[str]) -> re.Pattern:
    # A token starts a word; tokens without a trailing dot must also end one
    parts = [re.escape(tok) + ("" if tok.endswith(".") else r"(?!\w)") for tok in tokens]
    return re.compile(r"(?<!\w)(?:" + "|".join(parts) + ")", re.IGNORECASE)


_BOULEVARD_RE = _token_pattern(_BOULEVARD_TOKENS)
_AVENUE_RE = _token_pattern(_AVENUE_TOKENS)


def classify_street(street_name: str) -> StreetClass:
    name = street_name or ""
    if _BOULEVARD_RE.search(name):
        return StreetClass.BOULEVARD
    if _AVENUE_RE.search(name):
        return StreetClass.AVENUE
    return StreetClass.RESIDENTIAL


def half_width_for(street_name: str, table: Optional[Mapping[str, float]] = None) -> float:
    """Offset on each side of the centerline, in meters."""
    table = table or DEFAULT_HALF_WIDTHS
    cls = classify_street(street_name)
    return float(table.get(cls.value, DEFAULT_HALF_WIDTHS[cls]))


def buffer_line_string(coords: Sequence[LatLng], half_width_m: float, ref_lat: float) -> Optional[Polygon]:
    """
    Polygon of `half_width_m` on each side of a centerline.

    Each vertex is offset along the normal of its outgoing segment (the last
    vertex uses its incoming one). The ring is the left offsets, then the
    right offsets reversed, closed on the first left point. Returns None for
    fewer than two points or when the result has no area.
    """
    if len(coords) < 2:
        return None

    m_lat, m_lng = meters_per_degree(ref_lat)
    pts = np.array([[c.lng * m_lng, c.lat * m_lat] for c in coords], dtype=float)

    deltas = np.diff(pts, axis=0)
    lengths = np.hypot(deltas[:, 0], deltas[:, 1])
    if not np.any(lengths > 0):
        return None

    # Repeated vertices borrow the direction of the nearest real segment
    normals = np.zeros_like(deltas)
    last_valid = None
    for i, (d, length) in enumerate(zip(deltas, lengths)):
        if length > 0:
            last_valid = np.array([-d[1], d[0]]) / length
        normals[i] = last_valid if last_valid is not None else 0.0
    first_valid = normals[np.argmax(lengths > 0)]
    for i in range(len(normals)):
        if not normals[i].any():
            normals[i] = first_valid
    vertex_normals = np.vstack([normals, normals[-1:]])

    left = pts + vertex_normals * half_width_m
    right = pts - vertex_normals * half_width_m
    ring_m = np.vstack([left, right[::-1], left[:1]])
    ring = [(x / m_lng, y / m_lat) for x, y in ring_m]

    if abs(planar_area_m2(ring, ref_lat)) <= 0:
        return None

    polygon = Polygon(ring)
    if not polygon.is_valid:
        # Sharp turns fold the offset ring onto itself; buffer the line instead
        logger.debug("Offset ring self-intersects, using a flat-cap buffer")
        line_m = LineString(pts)
        buffered = line_m.buffer(half_width_m, cap_style="flat", join_style="mitre")
        if not isinstance(buffered, Polygon) or buffered.is_empty:
            return None
        polygon = Polygon([(x / m_lng, y / m_lat) for x, y in buffered.exterior.coords])
    return orient(polygon, sign=1.0)


def degenerate_centerline(point: LatLng, length_m: float = 10.0) -> list[LatLng]:
    """North-south centerline of `length_m` centered on `point`."""
    m_lat, _ = meters_per_degree(point.lat)
    half = (length_m / 2.0) / m_lat
    return [LatLng(point.lat - half, point.lng), LatLng(point.lat + half, point.lng)]


class ClosureSynthesizer:
    """
    Builds street-closure features from a street section and its resolved
    endpoints.

    Args:
        network: Street geometry resolver used for network centerlines
        router: Route provider used for routing centerlines
        centerline_source: Where the centerline comes from
        half_widths: Street-class half-width table in meters
        ref_lat: Latitude of the flat-earth frame
        degenerate_m: Endpoints closer than this skip the centerline lookup
    """

    def __init__(
        self,
        network=None,
        router: Optional[RouteProvider] = None,
        centerline_source: CenterlineSource | str = CenterlineSource.NETWORK,
        half_widths: Optional[Mapping[str, float]] = None,
        ref_lat: float = 42.6977,
        degenerate_m: float = 10.0,
    ):
        self.network = network
        self.router = router
        self.centerline_source = CenterlineSource(centerline_source)
        self.half_widths = dict(half_widths or DEFAULT_HALF_WIDTHS)
        self.ref_lat = ref_lat
        self.degenerate_m = degenerate_m

    def centerline(self, street_name: str, start: LatLng, end: LatLng) -> tuple[list[LatLng], str]:
        """Centerline coordinates and the name of the source that produced them."""
        if start.distance_to(end) < self.degenerate_m:
            logger.debug(f"Endpoints of '{street_name}' nearly coincide, using a short north-south line")
            return degenerate_centerline(start, self.degenerate_m), "degenerate"

        coords: Optional[list[LatLng]] = None
        if self.centerline_source == CenterlineSource.NETWORK and self.network is not None:
            coords = self.network.street_section(street_name, start, end)
        elif self.centerline_source == CenterlineSource.ROUTING and self.router is not None:
            coords = self.router.route_line(start, end)

        if coords and len(coords) >= 2:
            return list(coords), self.centerline_source.value

        if self.centerline_source != CenterlineSource.STRAIGHT:
            logger.info(f"No {self.centerline_source} centerline for '{street_name}', using a straight line")
        return [start, end], CenterlineSource.STRAIGHT.value

    def synthesize(self, section: StreetSection, start: LatLng, end: LatLng) -> Optional[GeoFeature]:
        coords, source = self.centerline(section.street_name, start, end)
        polygon = buffer_line_string(coords, half_width_for(section.street_name, self.half_widths), self.ref_lat)
        if polygon is None:
            logger.warning(f"Failed to buffer centerline for '{section.street_name}'")
            return None

        first = section.time_windows[0] if section.time_windows else None
        return GeoFeature(
            geometry=polygon,
            properties={
                "feature_type": FeatureType.STREET_CLOSURE.value,
                "street": section.street_name,
                "from": section.from_,
                "to": section.to,
                "street_class": classify_street(section.street_name).value,
                "centerline_source": source,
                "start_time": first.to_dict()["start"] if first else "",
                "end_time": first.to_dict()["end"] if first else "",
                "timespans": [tw.to_dict() for tw in section.time_windows],
            },
        )
