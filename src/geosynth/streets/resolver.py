"""
Street geometry resolver.

Works on top of a road network source (Overpass) to answer three questions
with geometry alone: where two named streets cross, where a named address
lies, and what the centerline of a street looks like between two points.
"""

import logging
from typing import Optional, List, Sequence

from shapely.geometry import Point
from shapely.ops import nearest_points, unary_union

from ..geocoding.base import AddressGeocoder, IntersectionResolver, RoadNetworkSource
from ..geocoding.models import GeocodeResult, GeocodeSource, GeocodeStatus, RoadSegment, ServiceArea, SOFIA
from ..geocoding.normalizers import has_house_number
from ..geometry import LatLng, LocalProjection, bbox_center, line_intersections
from .stitching import slice_single_segment, stitch_segments

logger = logging.getLogger(__name__)


def find_intersection(
    segments_a: Sequence[RoadSegment],
    segments_b: Sequence[RoadSegment],
    projection: LocalProjection,
    reference: LatLng,
    buffer_m: float = 30.0,
    max_gap_m: float = 200.0,
) -> Optional[LatLng]:
    """
    Crossing point of two streets given as loose segments.

    In order of preference:
      1. the exact crossing, or the one nearest `reference` when they cross
         more than once;
      2. the bounding-box center of the overlap of both streets buffered by
         `buffer_m`;
      3. the closest point of B to any vertex of A, when closer than `max_gap_m`.
    """
    lines_a = [projection.line(s.coordinates) for s in segments_a if len(s) >= 2]
    lines_b = [projection.line(s.coordinates) for s in segments_b if len(s) >= 2]
    if not lines_a or not lines_b:
        return None

    crossings = line_intersections(lines_a, lines_b)
    if len(crossings) == 1:
        return projection.latlng(crossings[0])
    if crossings:
        ref = projection.point(reference)
        best = min(crossings, key=lambda p: p.distance(ref))
        logger.debug(f"{len(crossings)} crossings, using the one nearest the reference point")
        return projection.latlng(best)

    overlap = unary_union(lines_a).buffer(buffer_m).intersection(unary_union(lines_b).buffer(buffer_m))
    if not overlap.is_empty:
        logger.debug("No exact crossing, using buffered overlap")
        return projection.latlng(bbox_center(overlap))

    min_gap = float("inf")
    best_point: Optional[Point] = None
    for la in lines_a:
        for lb in lines_b:
            for coords in la.coords:
                vertex = Point(coords)
                snapped = nearest_points(lb, vertex)[0]
                gap = vertex.distance(snapped)
                if gap < min_gap:
                    min_gap, best_point = gap, snapped

    if best_point is not None and min_gap < max_gap_m:
        logger.debug(f"Using nearest point ({min_gap:.1f}m gap)")
        return projection.latlng(best_point)

    logger.info(f"Streets too far apart ({min_gap:.1f}m), no valid intersection")
    return None


class StreetGeometryResolver(AddressGeocoder, IntersectionResolver):
    """
    Geometry-only resolution over a road network.

    Fetched segments are memoized per street name for the lifetime of the
    resolver (one run), since the same street is usually asked for both its
    endpoints and its centerline.
    """

    name = "overpass"

    def __init__(
        self,
        network: RoadNetworkSource,
        projection: Optional[LocalProjection] = None,
        service_area: ServiceArea = SOFIA,
        buffer_m: float = 30.0,
        max_gap_m: float = 200.0,
        match_tolerance_m: float = 50.0,
        end_tolerance_m: float = 10.0,
        max_segments: int = 10,
        address_geocoder: Optional[AddressGeocoder] = None,
    ):
        self.network = network
        self.projection = projection or LocalProjection()
        self.service_area = service_area
        self.buffer_m = buffer_m
        self.max_gap_m = max_gap_m
        self.match_tolerance_m = match_tolerance_m
        self.end_tolerance_m = end_tolerance_m
        self.max_segments = max_segments
        self.address_geocoder = address_geocoder
        self._segments: dict[str, List[RoadSegment]] = {}

    def segments(self, street_name: str) -> List[RoadSegment]:
        if street_name not in self._segments:
            self._segments[street_name] = self.network.fetch_road_segments(street_name)
        return self._segments[street_name]

    def clear(self) -> None:
        self._segments.clear()

    def resolve_intersection(self, street_a: str, street_b: str) -> Optional[LatLng]:
        segs_a = self.segments(street_a)
        if not segs_a:
            return None
        segs_b = self.segments(street_b)
        if not segs_b:
            return None
        point = find_intersection(
            segs_a, segs_b, self.projection, self.service_area.center,
            buffer_m=self.buffer_m, max_gap_m=self.max_gap_m,
        )
        if point is not None and not self.service_area.contains(point):
            logger.info(f"Intersection of '{street_a}' and '{street_b}' lies outside {self.service_area.name}")
            return None
        return point

    def geocode(self, text: str) -> GeocodeResult:
        """
        Numbered addresses go to the address geocoder; a bare street name
        resolves to the center of the street's extent.
        """
        if not text or not text.strip():
            return GeocodeResult(query=text or "", status=GeocodeStatus.INVALID_INPUT)

        if has_house_number(text):
            if self.address_geocoder is None:
                return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)
            return self.address_geocoder.geocode(text)

        segs = self.segments(text)
        if not segs:
            return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)
        extent = unary_union([self.projection.line(s.coordinates) for s in segs if len(s) >= 2])
        if extent.is_empty:
            return GeocodeResult(query=text, status=GeocodeStatus.NOT_FOUND)
        center = self.projection.latlng(bbox_center(extent))
        if not self.service_area.contains(center):
            return GeocodeResult(query=text, status=GeocodeStatus.OUT_OF_AREA)
        return GeocodeResult(
            query=text,
            status=GeocodeStatus.OK,
            lat=center.lat,
            lng=center.lng,
            formatted_address=text,
            source=GeocodeSource.ADDRESS,
        )

    def street_section(self, street_name: str, start: LatLng, end: LatLng) -> Optional[List[LatLng]]:
        """
        Centerline of `street_name` from `start` to `end`.

        A single segment passing near both points is preferred; otherwise the
        segments are stitched together greedily.
        """
        segs = self.segments(street_name)
        if not segs:
            logger.info(f"No geometry found for street '{street_name}'")
            return None

        section = slice_single_segment(segs, start, end, self.projection, self.match_tolerance_m)
        if section is not None and len(section) >= 2:
            return section

        path = stitch_segments(
            segs, start, end, self.projection,
            match_tolerance_m=self.match_tolerance_m,
            end_tolerance_m=self.end_tolerance_m,
            max_segments=self.max_segments,
        )
        if path is None:
            logger.info(f"Could not extract a section of '{street_name}'")
            return None
        return path.coordinates
