"""
Geometry primitives shared by the geocoding, synthesis and matching layers.

Coordinates travel through the system as `LatLng` values. Shapely geometries
use GeoJSON axis order (x = longitude, y = latitude) unless they have been
moved into the local metric CRS through `LocalProjection`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from math import radians, sin, cos, sqrt, atan2
from typing import Iterable, Sequence

import numpy as np
from pyproj import Geod, Transformer
from shapely.geometry import LineString, MultiPoint, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

EARTH_RADIUS_M = 6371000
METERS_PER_DEGREE_LAT = 111000.0

_GEOD = Geod(ellps="WGS84")


@dataclass(frozen=True)
class LatLng:
    """A WGS84 coordinate."""
    lat: float
    lng: float

    def to_lonlat(self) -> tuple[float, float]:
        """Return GeoJSON-ordered (longitude, latitude)."""
        return (self.lng, self.lat)

    @classmethod
    def from_lonlat(cls, coords: Sequence[float]) -> "LatLng":
        return cls(lat=float(coords[1]), lng=float(coords[0]))

    def distance_to(self, other: "LatLng") -> float:
        """Great-circle distance in meters."""
        return haversine_m(self, other)


def haversine_m(a: LatLng, b: LatLng) -> float:
    """
    Calculate distance between two coordinates using the Haversine formula.

    Returns:
        Distance in meters
    """
    lat1, lon1 = radians(a.lat), radians(a.lng)
    lat2, lon2 = radians(b.lat), radians(b.lng)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat/2)**2 + cos(lat1) * cos(lat2) * sin(dlon/2)**2
    c = 2 * atan2(sqrt(h), sqrt(1-h))

    return EARTH_RADIUS_M * c


def geodesic_distance_m(a: LatLng, b: LatLng) -> float:
    """Ellipsoidal distance in meters (WGS84)."""
    _, _, dist = _GEOD.inv(a.lng, a.lat, b.lng, b.lat)
    return float(dist)


def meters_per_degree(lat: float) -> tuple[float, float]:
    """
    Local flat-earth scale factors at a given latitude.

    Returns:
        (meters per degree of latitude, meters per degree of longitude)
    """
    return METERS_PER_DEGREE_LAT, METERS_PER_DEGREE_LAT * cos(radians(lat))


def offset(point: LatLng, north_m: float = 0.0, east_m: float = 0.0) -> LatLng:
    """Move a coordinate by a metric offset using the flat-earth approximation."""
    m_lat, m_lng = meters_per_degree(point.lat)
    return LatLng(lat=point.lat + north_m / m_lat, lng=point.lng + east_m / m_lng)


def planar_area_m2(ring: Sequence[Sequence[float]], ref_lat: float) -> float:
    """
    Signed shoelace area of a (lon, lat) ring, scaled to square meters with
    the flat-earth factors at `ref_lat`. Counter-clockwise rings are positive.
    """
    if len(ring) < 3:
        return 0.0
    m_lat, m_lng = meters_per_degree(ref_lat)
    pts = np.asarray(ring, dtype=float)
    x = pts[:, 0] * m_lng
    y = pts[:, 1] * m_lat
    return float(0.5 * np.sum(x[:-1] * y[1:] - x[1:] * y[:-1]) + 0.5 * (x[-1] * y[0] - x[0] * y[-1]))


def circle_polygon(center: LatLng, radius_m: float, steps: int = 64) -> Polygon:
    """Geodesic circle around `center` as a lon/lat polygon with `steps` vertices."""
    azimuths = np.linspace(0.0, 360.0, steps, endpoint=False)
    lons, lats, _ = _GEOD.fwd(
        np.full(steps, center.lng),
        np.full(steps, center.lat),
        azimuths,
        np.full(steps, float(radius_m)),
    )
    ring = list(zip(lons, lats))
    ring.append(ring[0])
    return Polygon(ring)


def line_intersections(lines_a: Iterable[LineString], lines_b: Iterable[LineString]) -> list[Point]:
    """
    Exact crossing points between every line of `lines_a` and every line of `lines_b`.

    Overlapping (collinear) stretches contribute their end points. Duplicate
    points produced by shared vertices are collapsed.
    """
    lines_b = list(lines_b)
    found: dict[tuple[float, float], Point] = {}
    for la in lines_a:
        for lb in lines_b:
            if not la.intersects(lb):
                continue
            for pt in _points_of(la.intersection(lb)):
                key = (round(pt.x, 6), round(pt.y, 6))
                found.setdefault(key, pt)
    return list(found.values())


def _points_of(geom: BaseGeometry) -> list[Point]:
    if geom.is_empty:
        return []
    if isinstance(geom, Point):
        return [geom]
    if isinstance(geom, MultiPoint):
        return list(geom.geoms)
    if isinstance(geom, LineString):
        coords = list(geom.coords)
        return [Point(coords[0]), Point(coords[-1])]
    if hasattr(geom, "geoms"):
        points: list[Point] = []
        for part in geom.geoms:
            points.extend(_points_of(part))
        return points
    return []


def convex_hull_polygon(points: Sequence[LatLng]) -> Polygon | None:
    """Convex hull of the points, or None when it degenerates (collinear or repeated points)."""
    if len(points) < 3:
        return None
    hull = MultiPoint([p.to_lonlat() for p in points]).convex_hull
    if isinstance(hull, Polygon) and not hull.is_empty and hull.area > 0:
        return hull
    return None


def bbox_center(geom: BaseGeometry) -> Point:
    """Center of the bounding box of a geometry."""
    minx, miny, maxx, maxy = geom.bounds
    return Point((minx + maxx) / 2, (miny + maxy) / 2)


class LocalProjection:
    """
    Moves lon/lat geometries into a local metric CRS and back.

    Buffers, point-to-line distances and nearest-point searches are done in
    the metric CRS so tolerances can be expressed in meters.
    """

    def __init__(self, proj_crs: str = "EPSG:32634"):
        self.proj_crs = proj_crs

    @cached_property
    def _forward(self) -> Transformer:
        return Transformer.from_crs("EPSG:4326", self.proj_crs, always_xy=True)

    @cached_property
    def _inverse(self) -> Transformer:
        return Transformer.from_crs(self.proj_crs, "EPSG:4326", always_xy=True)

    def to_metric(self, geom: BaseGeometry) -> BaseGeometry:
        return transform(self._forward.transform, geom)

    def to_geographic(self, geom: BaseGeometry) -> BaseGeometry:
        return transform(self._inverse.transform, geom)

    def point(self, coords: LatLng) -> Point:
        """Metric point for a coordinate."""
        x, y = self._forward.transform(coords.lng, coords.lat)
        return Point(x, y)

    def line(self, coords: Sequence[LatLng]) -> LineString:
        """Metric line for a coordinate sequence."""
        return LineString([self._forward.transform(c.lng, c.lat) for c in coords])

    def latlng(self, point: Point) -> LatLng:
        """Coordinate for a metric point."""
        lng, lat = self._inverse.transform(point.x, point.y)
        return LatLng(lat=lat, lng=lng)
