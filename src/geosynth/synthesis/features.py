"""GeoJSON feature containers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterator

from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiPoint, Point, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

_ALLOWED = (Point, MultiPoint, LineString, Polygon)


class FeatureType(StrEnum):
    PIN = "pin"
    STREET_CLOSURE = "street_closure"
    INCIDENT = "incident"


@dataclass(frozen=True)
class GeoFeature:
    """One geometry (lon/lat) plus its property bag."""
    geometry: BaseGeometry
    properties: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.geometry, _ALLOWED):
            raise ValueError(f"Unsupported geometry type: {self.geometry.geom_type}")
        if self.geometry.is_empty:
            raise ValueError("Empty geometry")

    @property
    def geometry_type(self) -> str:
        return self.geometry.geom_type

    @property
    def feature_type(self) -> str | None:
        return self.properties.get("feature_type")

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": mapping(self.geometry),
            "properties": dict(self.properties),
        }

    @classmethod
    def from_geojson(cls, data: dict[str, Any]) -> "GeoFeature":
        return cls(geometry=shape(data["geometry"]), properties=dict(data.get("properties") or {}))


@dataclass
class FeatureCollection:
    """Ordered, independent features produced for one message."""
    features: list[GeoFeature] = field(default_factory=list)

    def __iter__(self) -> Iterator[GeoFeature]:
        return iter(self.features)

    def __len__(self) -> int:
        return len(self.features)

    def append(self, feature: GeoFeature) -> None:
        self.features.append(feature)

    def is_empty(self) -> bool:
        return not self.features

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "FeatureCollection", "features": [f.to_geojson() for f in self.features]}

    @classmethod
    def from_geojson(cls, data: dict[str, Any]) -> "FeatureCollection":
        """Features are parsed one by one; one that cannot be read is skipped with a warning."""
        if not isinstance(data, dict):
            logger.warning(f"Not a GeoJSON object: {str(data)[:80]}")
            return cls()
        features = []
        for index, raw in enumerate(data.get("features") or []):
            try:
                features.append(GeoFeature.from_geojson(raw))
            except (ShapelyError, ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping feature {index}: {e}")
        return cls(features)
