from __future__ import annotations

import math

import pytest
from shapely.geometry import LineString, Point, Polygon

from geosynth.geometry import LatLng, geodesic_distance_m, offset
from geosynth.notifications import (
    DuckDBMatchStore,
    InterestZone,
    MessageSnapshot,
    NotificationMatch,
    Notifier,
    SpatialMatcher,
    clamp_radius,
    deduplicate_matches,
    match_and_notify,
    match_message_to_zone,
    match_messages,
    parse_zone,
)
from geosynth.synthesis.features import FeatureCollection, GeoFeature
from geosynth.utils.errors import DataValidationError

CENTER = LatLng(42.6977, 23.3219)


def zone(zone_id="z1", user_id="u1", center=CENTER, radius=500):
    return InterestZone(id=zone_id, user_id=user_id, center=center, radius_m=radius)


def point_feature(coords):
    return GeoFeature(Point(coords.to_lonlat()), {"feature_type": "pin"})


def collection(*features):
    return FeatureCollection(list(features))


def message(message_id, *features):
    return MessageSnapshot(message_id, collection(*features))


# --- radius -------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [(50, 100.0), (5000, 1000.0), (250, 250.0), (float("nan"), 500.0), (None, 500.0), ("abc", 500.0)],
)
def test_clamp_radius(raw, expected):
    assert clamp_radius(raw) == expected


def test_zone_radius_is_clamped_on_creation_and_on_resize():
    z = zone(radius=50)
    assert z.radius_m == 100

    z.resize(5000)
    assert z.radius_m == 1000

    z.move(LatLng(42.70, 23.33))
    assert z.center == LatLng(42.70, 23.33)


def test_parse_zone_reads_wire_format():
    z = parse_zone({"id": "z9", "userId": "u9", "coordinates": {"lat": 42.69, "lng": 23.32}})
    assert z.user_id == "u9"
    assert z.center == LatLng(42.69, 23.32)
    assert z.radius_m == 500


def test_parse_zone_rejects_missing_fields():
    with pytest.raises(DataValidationError):
        parse_zone({"id": "z9"})


# --- single zone --------------------------------------------------------------


def test_point_inside_the_zone_matches_with_its_distance():
    inside = offset(CENTER, north_m=300)

    distance = match_message_to_zone(collection(point_feature(inside)), zone())

    assert distance == pytest.approx(geodesic_distance_m(CENTER, inside))
    assert distance == pytest.approx(300, rel=0.01)


def test_point_outside_the_zone_does_not_match():
    outside = offset(CENTER, north_m=800)
    assert match_message_to_zone(collection(point_feature(outside)), zone()) is None


def test_line_crossing_the_zone_matches_at_its_centroid_distance():
    west, east = offset(CENTER, north_m=200, east_m=-2000), offset(CENTER, north_m=200, east_m=2000)
    line = GeoFeature(LineString([west.to_lonlat(), east.to_lonlat()]), {"feature_type": "street_closure"})

    distance = match_message_to_zone(collection(line), zone())

    assert distance == pytest.approx(200, rel=0.02)


def test_smallest_distance_among_intersecting_features():
    near, far = offset(CENTER, east_m=100), offset(CENTER, east_m=400)
    distance = match_message_to_zone(collection(point_feature(far), point_feature(near)), zone())
    assert distance == pytest.approx(100, rel=0.01)


def test_empty_or_missing_geometry_never_matches():
    assert match_message_to_zone(None, zone()) is None
    assert match_message_to_zone(FeatureCollection(), zone()) is None


# --- many messages, many zones ------------------------------------------------


def _scenario():
    messages = [
        message("m1", point_feature(offset(CENTER, north_m=300))),
        message("m2", point_feature(offset(CENTER, north_m=3000))),
        MessageSnapshot("m3", None),
    ]
    zones = [
        zone("z1", "u1", CENTER, 500),
        zone("z2", "u1", offset(CENTER, north_m=350), 200),
        zone("z3", "u2", offset(CENTER, north_m=2900), 300),
    ]
    return messages, zones


def test_deduplicate_keeps_the_smallest_distance_per_user_and_message():
    matches = [
        NotificationMatch("m1", "u1", "z1", 300.0),
        NotificationMatch("m1", "u1", "z2", 50.0),
        NotificationMatch("m1", "u2", "z3", 700.0),
    ]
    deduped = deduplicate_matches(matches)
    assert sorted((m.user_id, m.interest_id) for m in deduped) == [("u1", "z2"), ("u2", "z3")]


def test_match_messages_reports_every_pair():
    messages, zones = _scenario()
    pairs = {(m.message_id, m.interest_id) for m in match_messages(messages, zones)}
    assert pairs == {("m1", "z1"), ("m1", "z2"), ("m2", "z3")}


def test_spatial_join_agrees_with_the_pairwise_matcher():
    messages, zones = _scenario()

    joined = SpatialMatcher().match(messages, zones)
    pairwise = deduplicate_matches(match_messages(messages, zones))

    def key(matches):
        return sorted((m.message_id, m.user_id, m.interest_id) for m in matches)

    assert key(joined) == key(pairwise) == [("m1", "u1", "z2"), ("m2", "u2", "z3")]
    by_key = {m.dedup_key: m.distance_m for m in pairwise}
    for m in joined:
        assert m.distance_m == pytest.approx(by_key[m.dedup_key], abs=1e-6)


def test_spatial_join_with_nothing_to_match():
    assert SpatialMatcher().match([], [zone()]) == []
    assert SpatialMatcher().match([MessageSnapshot("m3", None)], [zone()]) == []
    assert SpatialMatcher().match([message("m1", point_feature(CENTER))], []) == []


# --- one run with the ledger --------------------------------------------------


class RecordingNotifier(Notifier):
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def notify(self, match, message=None):
        if match.user_id in self.fail_for:
            raise RuntimeError("push service down")
        self.sent.append((match.user_id, match.message_id, message.id if message else None))
        return True


def test_match_and_notify_runs_once_per_message():
    messages, zones = _scenario()
    store = DuckDBMatchStore(":memory:")
    notifier = RecordingNotifier()

    first = match_and_notify(messages, zones, store, notifier=notifier, progress=False)
    second = match_and_notify(messages, zones, store, notifier=notifier, progress=False)

    assert first == {"processed": 3, "matches": 2, "sent": 2, "failed": 0}
    assert second == {"processed": 0, "matches": 0, "sent": 0, "failed": 0}
    assert sorted(notifier.sent) == [("u1", "m1", "m1"), ("u2", "m2", "m2")]
    assert store.unnotified() == []
    store.close()


def test_failed_deliveries_are_counted_and_still_marked():
    messages, zones = _scenario()
    store = DuckDBMatchStore(":memory:")

    counts = match_and_notify(messages, zones, store, notifier=RecordingNotifier(fail_for={"u2"}), progress=False)

    assert counts["sent"] == 1
    assert counts["failed"] == 1
    assert store.unnotified() == []
    store.close()


def test_distance_is_finite_for_polygons():
    ring = [offset(CENTER, north_m=n, east_m=e).to_lonlat() for n, e in [(0, 0), (0, 50), (50, 50), (50, 0), (0, 0)]]
    feature = GeoFeature(Polygon(ring), {"feature_type": "street_closure"})
    distance = match_message_to_zone(collection(feature), zone())
    assert math.isfinite(distance)
    assert distance == pytest.approx(math.hypot(25, 25), rel=0.02)


def test_unreadable_features_are_skipped_and_the_rest_still_match():
    good = point_feature(offset(CENTER, north_m=300)).to_geojson()
    snapshot = MessageSnapshot.from_geojson("m1", {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": {"type": "GeometryCollection", "geometries": []}, "properties": {}},
            good,
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": []}, "properties": {}},
            {"type": "Feature", "properties": {}},
        ],
    })

    assert [f.geometry_type for f in snapshot.features] == ["Point"]
    assert match_message_to_zone(snapshot.features, zone()) == pytest.approx(300, rel=0.01)
    assert [(m.message_id, m.interest_id) for m in SpatialMatcher().match([snapshot], [zone()])] == [("m1", "z1")]


def test_non_object_geojson_gives_an_empty_collection():
    assert FeatureCollection.from_geojson("not geojson").is_empty()
