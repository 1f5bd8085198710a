"""
Assembly of a message's FeatureCollection from its extraction and the
router's coordinate mapping.
"""

import logging
from typing import Mapping, Optional, List

from shapely.geometry import Point

from ..extraction import LocationExtraction, Pin, StreetSection
from ..geocoding.models import GeocodedPoint
from ..geocoding.normalizers import normalize_address
from ..geocoding.router import intersection_key
from .closure import ClosureSynthesizer
from .features import FeatureCollection, FeatureType, GeoFeature

logger = logging.getLogger(__name__)


def lookup_endpoint(mapping: Mapping[str, GeocodedPoint], street_name: str, endpoint: str) -> Optional[GeocodedPoint]:
    """
    Coordinates of a street endpoint. The street-qualified intersection key
    wins over the bare endpoint text, so that the same cross street on two
    different streets resolves to two different points.
    """
    return mapping.get(intersection_key(street_name, endpoint)) or mapping.get(endpoint)


def missing_addresses(extraction: LocationExtraction, mapping: Mapping[str, GeocodedPoint]) -> List[str]:
    """Pins and street endpoints that have no coordinates in `mapping`."""
    missing: List[str] = []
    for pin in extraction.pins:
        if pin.address not in mapping:
            missing.append(pin.address)
    for street in extraction.streets:
        if lookup_endpoint(mapping, street.street_name, street.from_) is None:
            missing.append(f"{street.street_name} from: {street.from_}")
        if lookup_endpoint(mapping, street.street_name, street.to) is None:
            missing.append(f"{street.street_name} to: {street.to}")
    return missing


def pin_feature(pin: Pin, point: GeocodedPoint) -> GeoFeature:
    normalized = normalize_address(pin.address)
    first = pin.time_windows[0] if pin.time_windows else None
    return GeoFeature(
        geometry=Point(point.coordinates.to_lonlat()),
        properties={
            "feature_type": FeatureType.PIN.value,
            "original_text": pin.address,
            "normalized_text": normalized,
            "formatted_address": point.formatted_address,
            "is_intersection": " and " in normalized,
            "start_time": first.to_dict()["start"] if first else "",
            "end_time": first.to_dict()["end"] if first else "",
            "timespans": [tw.to_dict() for tw in pin.time_windows],
        },
    )


def convert_to_features(
    extraction: LocationExtraction,
    mapping: Mapping[str, GeocodedPoint],
    synthesizer: ClosureSynthesizer,
) -> FeatureCollection:
    """
    One Point per resolved pin and one closure Polygon per street section
    with both endpoints resolved. Anything unresolved is skipped with a
    warning; the remaining features are unaffected.
    """
    collection = FeatureCollection()

    for pin in extraction.pins:
        point = mapping.get(pin.address)
        if point is None:
            logger.warning(f"Skipping pin without coordinates: '{pin.address}'")
            continue
        collection.append(pin_feature(pin, point))

    for street in extraction.streets:
        feature = _closure_feature(street, mapping, synthesizer)
        if feature is not None:
            collection.append(feature)

    logger.info(f"Built {len(collection)} features ({len(extraction.pins)} pins, {len(extraction.streets)} streets)")
    return collection


def _closure_feature(
    street: StreetSection,
    mapping: Mapping[str, GeocodedPoint],
    synthesizer: ClosureSynthesizer,
) -> Optional[GeoFeature]:
    start = lookup_endpoint(mapping, street.street_name, street.from_)
    end = lookup_endpoint(mapping, street.street_name, street.to)
    if start is None or end is None:
        logger.warning(
            f"Skipping '{street.street_name}': unresolved endpoint "
            f"(from={'ok' if start else street.from_!r}, to={'ok' if end else street.to!r})"
        )
        return None
    return synthesizer.synthesize(street, start.coordinates, end.coordinates)
