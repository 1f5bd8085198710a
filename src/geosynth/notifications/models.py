"""Interest zones, messages to match, and match records."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..geometry import LatLng
from ..synthesis.features import FeatureCollection
from ..utils.errors import DataValidationError

MIN_RADIUS_M = 100.0
MAX_RADIUS_M = 1000.0
DEFAULT_RADIUS_M = 500.0


def clamp_radius(value: Any) -> float:
    """Radius in [100, 1000] meters; missing or non-numeric values get the 500 m default."""
    try:
        radius = float(value)
    except (TypeError, ValueError):
        return DEFAULT_RADIUS_M
    if math.isnan(radius):
        return DEFAULT_RADIUS_M
    return min(max(radius, MIN_RADIUS_M), MAX_RADIUS_M)


class InterestZone(BaseModel):
    """A user's circle of interest. The radius is clamped on creation and on every change."""
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str
    user_id: str = Field(alias="userId")
    center: LatLng = Field(alias="coordinates")
    radius_m: float = Field(default=DEFAULT_RADIUS_M, alias="radius")

    @field_validator("radius_m", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return clamp_radius(v)

    def move(self, center: LatLng) -> None:
        self.center = center

    def resize(self, radius_m: Any) -> None:
        self.radius_m = radius_m


def parse_zone(raw: dict[str, Any], source: str = "interests") -> InterestZone:
    try:
        return InterestZone.model_validate(raw)
    except ValidationError as e:
        raise DataValidationError(source=source, errors=e.errors(), original=e) from e


@dataclass(frozen=True)
class MessageSnapshot:
    """A finalized message as the matcher sees it."""
    id: str
    features: Optional[FeatureCollection]
    text: str = ""

    @classmethod
    def from_geojson(cls, message_id: str, geojson: Optional[dict[str, Any]], text: str = "") -> "MessageSnapshot":
        return cls(message_id, FeatureCollection.from_geojson(geojson) if geojson else None, text)


@dataclass(frozen=True)
class NotificationMatch:
    """One message matched to one user, through the zone with the smallest distance."""
    message_id: str
    user_id: str
    interest_id: str
    distance_m: float
    id: Optional[int] = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.user_id, self.message_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "user_id": self.user_id,
            "interest_id": self.interest_id,
            "distance_m": self.distance_m,
        }
