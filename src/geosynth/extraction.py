"""
Structured location extraction for one announcement.

The extraction is produced upstream (from free text) and handed to the engine
as JSON. Field aliases follow the wire format (`street`, `from`, `timespans`).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .utils.errors import DataValidationError

_TIME_FORMATS = ("%d.%m.%Y %H:%M", "%d.%m.%Y")


def _parse_time(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return value


class TimeWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def _accept_local_format(cls, v: Any) -> Any:
        return _parse_time(v)

    @field_validator("start", "end")
    @classmethod
    def _truncate_to_minute(cls, v: datetime) -> datetime:
        return v.replace(second=0, microsecond=0)

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(timespec="minutes"), "end": self.end.isoformat(timespec="minutes")}


class Pin(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    address: str
    time_windows: tuple[TimeWindow, ...] = Field(default=(), alias="timespans")


class StreetSection(BaseModel):
    """A closed stretch of `street_name` between two endpoints.

    `from_`/`to` are either numbered addresses on the street or the names
    of cross streets.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    street_name: str = Field(alias="street")
    from_: str = Field(alias="from")
    to: str
    time_windows: tuple[TimeWindow, ...] = Field(default=(), alias="timespans")

    @property
    def endpoints(self) -> tuple[str, str]:
        return (self.from_, self.to)


class LocationExtraction(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    responsible_entity: str = ""
    pins: tuple[Pin, ...] = ()
    streets: tuple[StreetSection, ...] = ()

    def addresses(self) -> list[str]:
        """Every text that needs a coordinate, pins first, deduplicated in order."""
        seen: dict[str, None] = {}
        for pin in self.pins:
            seen.setdefault(pin.address, None)
        for street in self.streets:
            seen.setdefault(street.from_, None)
            seen.setdefault(street.to, None)
        return list(seen)

    def is_empty(self) -> bool:
        return not self.pins and not self.streets


def parse_extraction(raw: dict[str, Any], source: str = "extraction") -> LocationExtraction:
    """Validate a raw extraction payload, wrapping pydantic errors in DataValidationError."""
    try:
        return LocationExtraction.model_validate(raw)
    except ValidationError as e:
        raise DataValidationError(source=source, errors=e.errors(), original=e) from e
