"""
Service boundary filter.

Messages whose features fall entirely outside the city boundary are not of
interest. When a geometry is invalid and the exact test fails, the check
falls back to comparing bounding boxes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from shapely.errors import GEOSException
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .synthesis.features import FeatureCollection
from .utils.errors import DataValidationError

logger = logging.getLogger(__name__)


def boundary_from_geojson(data: dict[str, Any]) -> BaseGeometry:
    """Union of the geometries in a GeoJSON Feature, FeatureCollection or bare geometry."""
    kind = data.get("type")
    if kind == "FeatureCollection":
        geoms = [shape(f["geometry"]) for f in data.get("features", []) if f.get("geometry")]
    elif kind == "Feature":
        geoms = [shape(data["geometry"])] if data.get("geometry") else []
    else:
        geoms = [shape(data)]
    if not geoms:
        raise DataValidationError(source="boundary", errors=[{"msg": "boundary has no geometry"}])
    return unary_union(geoms)


def load_boundary(path: Path | str) -> BaseGeometry:
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        boundary = boundary_from_geojson(json.load(f))
    logger.info(f"Loaded boundary from {path} (bounds={tuple(round(b, 4) for b in boundary.bounds)})")
    return boundary


def _touches(geom: BaseGeometry, boundary: BaseGeometry) -> bool:
    try:
        return geom.intersects(boundary)
    except GEOSException as e:
        logger.warning(f"Geometry test failed, comparing bounding boxes instead: {e}")
        return box(*geom.bounds).intersects(box(*boundary.bounds))


def intersects_boundary(collection: Optional[FeatureCollection], boundary: BaseGeometry) -> bool:
    """True when any feature touches the boundary."""
    if collection is None or collection.is_empty():
        return False
    return any(_touches(feature.geometry, boundary) for feature in collection)


def filter_features(collection: Optional[FeatureCollection], boundary: BaseGeometry) -> Optional[FeatureCollection]:
    """Only the features touching the boundary; None when none is left."""
    if collection is None:
        return None
    kept = FeatureCollection([f for f in collection if _touches(f.geometry, boundary)])
    dropped = len(collection) - len(kept)
    if dropped:
        logger.info(f"Dropped {dropped} features outside the boundary")
    return None if kept.is_empty() else kept
