"""
Geometry for incident feeds that report a center point plus the affected
customer locations.
"""

import logging
from typing import Any, Optional, List, Mapping, Sequence

from shapely.geometry import MultiPoint, Point
from shapely.geometry.base import BaseGeometry

from ..geometry import LatLng, convex_hull_polygon

logger = logging.getLogger(__name__)


def select_incident_geometry(center: LatLng, aux_points: Sequence[LatLng]) -> BaseGeometry:
    """
    Choose the geometry by how many auxiliary points there are.

    None: the center as a Point. One or two: a MultiPoint of the auxiliary
    points. Three or more: their convex hull, or a MultiPoint when the hull
    degenerates (all points collinear or coincident).
    """
    if not aux_points:
        return Point(center.to_lonlat())
    if len(aux_points) <= 2:
        return MultiPoint([p.to_lonlat() for p in aux_points])

    hull = convex_hull_polygon(aux_points)
    if hull is not None:
        return hull
    logger.debug(f"Convex hull degenerate for {len(aux_points)} points, using MultiPoint")
    return MultiPoint([p.to_lonlat() for p in aux_points])


def _to_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result:  # NaN
        return None
    return result


def parse_customer_points(points: Mapping[str, Any]) -> List[LatLng]:
    """
    Customer points from a feed payload of the form
    {"cnt": "2", "1": {"lat": "..", "lon": ".."}, "2": {...}}.
    Entries with unparsable coordinates are skipped.
    """
    count = _to_float((points or {}).get("cnt"))
    if not count:
        return []
    coords: List[LatLng] = []
    for i in range(1, int(count) + 1):
        entry = points.get(str(i))
        if not isinstance(entry, Mapping):
            continue
        lat, lon = _to_float(entry.get("lat")), _to_float(entry.get("lon"))
        if lat is not None and lon is not None:
            coords.append(LatLng(lat, lon))
    return coords


def incident_geometry(lat: Any, lon: Any, aux_points: Sequence[LatLng] = ()) -> Optional[BaseGeometry]:
    """
    Geometry for raw feed values. An unparsable center is only a problem
    when there are no auxiliary points to fall back on.
    """
    center_lat, center_lon = _to_float(lat), _to_float(lon)
    if center_lat is None or center_lon is None:
        if not aux_points:
            return None
        # The center is unused once auxiliary points exist
        return select_incident_geometry(aux_points[0], aux_points)
    return select_incident_geometry(LatLng(center_lat, center_lon), aux_points)
