"""
Turning a street's loose road-network segments into one ordered path.

All distances are measured in the local metric CRS.
"""

import logging
from typing import Optional, Sequence

from shapely.geometry import LineString, Point
from shapely.ops import substring

from ..geocoding.models import RoadPath, RoadSegment
from ..geometry import LatLng, LocalProjection

logger = logging.getLogger(__name__)


def slice_single_segment(
    segments: Sequence[RoadSegment],
    start: LatLng,
    end: LatLng,
    projection: LocalProjection,
    match_tolerance_m: float = 50.0,
) -> Optional[list[LatLng]]:
    """
    The part of one segment lying between the snapped start and end points.

    Only segments passing within `match_tolerance_m` of both points qualify;
    the one with the smallest combined snapping distance wins. The result
    runs from start to end.
    """
    start_pt = projection.point(start)
    end_pt = projection.point(end)

    best: Optional[LineString] = None
    best_total = float("inf")
    for seg in segments:
        if len(seg) < 2:
            continue
        line = projection.line(seg.coordinates)
        d_start = line.distance(start_pt)
        d_end = line.distance(end_pt)
        if d_start >= match_tolerance_m or d_end >= match_tolerance_m:
            continue
        if d_start + d_end >= best_total:
            continue
        section = substring(line, line.project(start_pt), line.project(end_pt))
        if isinstance(section, LineString) and section.length > 0:
            best, best_total = section, d_start + d_end

    if best is None:
        return None
    geographic = projection.to_geographic(best)
    return [LatLng.from_lonlat(c) for c in geographic.coords]


def stitch_segments(
    segments: Sequence[RoadSegment],
    start: LatLng,
    end: LatLng,
    projection: LocalProjection,
    match_tolerance_m: float = 50.0,
    end_tolerance_m: float = 10.0,
    max_segments: int = 10,
) -> Optional[RoadPath]:
    """
    Greedy walk from `start` towards `end` over unused segments.

    At each step the unused segment closest to the current tip is appended,
    reversed when its far end is nearer the tip than its near end. Ties go
    to the segment seen first. The walk stops when the tip is within
    `end_tolerance_m` of `end`, when no unused segment lies within
    `match_tolerance_m`, or after `max_segments` segments. Partial paths are
    returned as long as they hold at least two points.
    """
    lines = [projection.line(s.coordinates) if len(s) >= 2 else None for s in segments]
    end_pt = projection.point(end)
    tip: Point = projection.point(start)
    used: set[int] = set()
    path: list[RoadSegment] = []

    while len(used) < max_segments:
        if path and tip.distance(end_pt) <= end_tolerance_m:
            break

        nearest_idx = -1
        nearest_dist = float("inf")
        for i, line in enumerate(lines):
            if i in used or line is None:
                continue
            dist = line.distance(tip)
            if dist < nearest_dist:
                nearest_idx, nearest_dist = i, dist

        if nearest_idx == -1 or nearest_dist > match_tolerance_m:
            logger.debug(f"Cannot connect segments (min dist: {nearest_dist:.1f}m)")
            break

        used.add(nearest_idx)
        seg = segments[nearest_idx]
        line = lines[nearest_idx]
        head, tail = Point(line.coords[0]), Point(line.coords[-1])
        if tail.distance(tip) < head.distance(tip):
            seg = seg.reversed()
            head, tail = tail, head
        path.append(seg)
        tip = tail

    if len(used) >= max_segments and tip.distance(end_pt) > end_tolerance_m:
        logger.debug(f"Segment budget of {max_segments} used up before reaching the end")

    if not path:
        return None
    stitched = RoadPath(tuple(path))
    if len(stitched.coordinates) < 2:
        return None
    logger.debug(f"Connected {len(path)} segments into path with {len(stitched.coordinates)} points")
    return stitched
