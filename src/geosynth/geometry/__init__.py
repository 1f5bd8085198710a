from .primitives import (
    LatLng,
    LocalProjection,
    bbox_center,
    circle_polygon,
    convex_hull_polygon,
    geodesic_distance_m,
    haversine_m,
    line_intersections,
    meters_per_degree,
    offset,
    planar_area_m2,
)

__all__ = [
    "LatLng",
    "LocalProjection",
    "bbox_center",
    "circle_polygon",
    "convex_hull_polygon",
    "geodesic_distance_m",
    "haversine_m",
    "line_intersections",
    "meters_per_degree",
    "offset",
    "planar_area_m2",
]
