"""
Spatial notification matcher.

A message matches a zone when any of its features intersects the zone's
circle. The recorded distance is the smallest center-to-feature distance
among the intersecting features: exact for points, measured to the
centroid for lines and polygons.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import Geod
from shapely.errors import ShapelyError
from shapely.geometry import Point
from tqdm import tqdm

from ..geometry import LatLng, circle_polygon, geodesic_distance_m
from ..synthesis.features import FeatureCollection, GeoFeature
from .models import InterestZone, MessageSnapshot, NotificationMatch
from .storage import MatchStore

logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")


def _reference_point(feature: GeoFeature) -> Point:
    geom = feature.geometry
    return geom if isinstance(geom, Point) else geom.centroid


def match_message_to_zone(collection: Optional[FeatureCollection], zone: InterestZone) -> Optional[float]:
    """Minimum distance over the features intersecting the zone, or None when none does."""
    if collection is None or collection.is_empty():
        return None

    circle = circle_polygon(zone.center, zone.radius_m)
    best: Optional[float] = None
    for feature in collection:
        try:
            if not feature.geometry.intersects(circle):
                continue
            ref = _reference_point(feature)
        except ShapelyError as e:
            logger.warning(f"Skipping {feature.geometry_type} feature in zone {zone.id}: {e}")
            continue
        distance = geodesic_distance_m(zone.center, LatLng(ref.y, ref.x))
        if best is None or distance < best:
            best = distance
    return best


def deduplicate_matches(matches: Iterable[NotificationMatch]) -> list[NotificationMatch]:
    """One match per (user, message), keeping the smallest distance."""
    deduped: dict[tuple[str, str], NotificationMatch] = {}
    for match in matches:
        existing = deduped.get(match.dedup_key)
        if existing is None or match.distance_m < existing.distance_m:
            deduped[match.dedup_key] = match
    return list(deduped.values())


def match_messages(messages: Sequence[MessageSnapshot], zones: Sequence[InterestZone]) -> list[NotificationMatch]:
    """Every (message, zone) pair that matches, before deduplication."""
    matches: list[NotificationMatch] = []
    for message in messages:
        if not message.id or message.features is None:
            continue
        for zone in zones:
            distance = match_message_to_zone(message.features, zone)
            if distance is None:
                continue
            matches.append(NotificationMatch(message.id, zone.user_id, zone.id, distance))
            logger.debug(f"Match: message {message.id[:8]} -> user {zone.user_id[:8]} ({distance:.0f}m)")
    return matches


class SpatialMatcher:
    """
    Vectorized matching of many messages against many zones.

    Features and zone circles are laid out in GeoDataFrames and joined on
    intersection; distances are computed in one geodesic pass and duplicates
    per (user, message) are dropped keeping the smallest distance.
    """

    def __init__(self, circle_steps: int = 64):
        self.circle_steps = circle_steps

    def zones_frame(self, zones: Sequence[InterestZone]) -> gpd.GeoDataFrame:
        return gpd.GeoDataFrame(
            {
                "interest_id": [z.id for z in zones],
                "user_id": [z.user_id for z in zones],
                "center_lng": [z.center.lng for z in zones],
                "center_lat": [z.center.lat for z in zones],
            },
            geometry=[circle_polygon(z.center, z.radius_m, self.circle_steps) for z in zones],
            crs="EPSG:4326",
        )

    def features_frame(self, messages: Sequence[MessageSnapshot]) -> gpd.GeoDataFrame:
        rows = []
        for message in messages:
            if not message.id or message.features is None:
                continue
            for feature in message.features:
                try:
                    ref = _reference_point(feature)
                except ShapelyError as e:
                    logger.warning(f"Skipping {feature.geometry_type} feature of message {message.id}: {e}")
                    continue
                rows.append({
                    "message_id": message.id,
                    "ref_lng": ref.x,
                    "ref_lat": ref.y,
                    "geometry": feature.geometry,
                })
        if not rows:
            return gpd.GeoDataFrame(
                {"message_id": [], "ref_lng": [], "ref_lat": []}, geometry=[], crs="EPSG:4326"
            )
        return gpd.GeoDataFrame(rows, geometry="geometry", crs="EPSG:4326")

    def match(self, messages: Sequence[MessageSnapshot], zones: Sequence[InterestZone]) -> list[NotificationMatch]:
        if not messages or not zones:
            return []
        features = self.features_frame(messages)
        if features.empty:
            return []

        joined = gpd.sjoin(features, self.zones_frame(zones), how="inner", predicate="intersects")
        if joined.empty:
            logger.info("No message intersects any zone")
            return []

        _, _, dist = _GEOD.inv(
            joined["center_lng"].to_numpy(dtype=float),
            joined["center_lat"].to_numpy(dtype=float),
            joined["ref_lng"].to_numpy(dtype=float),
            joined["ref_lat"].to_numpy(dtype=float),
        )
        pairs = pd.DataFrame({
            "message_id": joined["message_id"].to_numpy(),
            "user_id": joined["user_id"].to_numpy(),
            "interest_id": joined["interest_id"].to_numpy(),
            "distance_m": np.asarray(dist, dtype=float),
        })

        best = pairs.loc[pairs.groupby(["user_id", "message_id"])["distance_m"].idxmin()]
        best = best.sort_values(["message_id", "user_id"])
        logger.info(f"Total matches: {len(pairs)}, after deduplication: {len(best)}")
        return [
            NotificationMatch(r.message_id, r.user_id, r.interest_id, float(r.distance_m))
            for r in best.itertuples(index=False)
        ]


class Notifier(ABC):
    """Delivers one notification per (user, message). Transport is up to the implementation."""

    @abstractmethod
    def notify(self, match: NotificationMatch, message: Optional[MessageSnapshot] = None) -> bool:
        """Return True when the notification was delivered."""
        ...


class LoggingNotifier(Notifier):
    """Notifier that only logs; used when no delivery transport is configured."""

    def notify(self, match: NotificationMatch, message: Optional[MessageSnapshot] = None) -> bool:
        logger.info(
            f"Notify user {match.user_id} about message {match.message_id} "
            f"({round(match.distance_m)}m from zone {match.interest_id})"
        )
        return True


def match_and_notify(
    messages: Sequence[MessageSnapshot],
    zones: Sequence[InterestZone],
    store: MatchStore,
    notifier: Optional[Notifier] = None,
    matcher: Optional[SpatialMatcher] = None,
    progress: bool = True,
) -> dict[str, int]:
    """
    One matching run: match messages the ledger has not seen yet, store the
    matches, deliver the pending ones and mark them notified.

    Returns:
        Counts of processed messages, new matches, sent and failed notifications
    """
    notifier = notifier or LoggingNotifier()
    matcher = matcher or SpatialMatcher()

    processed = store.processed_message_ids()
    pending = [m for m in messages if m.id and m.id not in processed]
    logger.info(f"Found {len(pending)} unprocessed messages (already processed: {len(processed)})")

    matches = matcher.match([m for m in pending if m.features is not None], zones)
    store.write_matches(matches)
    store.mark_processed([m.id for m in pending])

    unnotified = store.unnotified()
    by_id = {m.id: m for m in messages}
    sent = failed = 0
    for match in tqdm(deduplicate_matches(unnotified), desc="Sending notifications", disable=not progress):
        try:
            delivered = notifier.notify(match, by_id.get(match.message_id))
        except Exception as e:
            logger.error(f"Failed to notify user {match.user_id} about {match.message_id}: {e}")
            delivered = False
        if delivered:
            sent += 1
        else:
            failed += 1

    store.mark_notified([m.id for m in unnotified if m.id is not None])
    logger.info(f"Notifications sent: {sent}, errors: {failed}")
    return {"processed": len(pending), "matches": len(matches), "sent": sent, "failed": failed}
