from __future__ import annotations

import pytest

from geosynth.geocoding.base import AddressGeocoder, RoadNetworkSource
from geosynth.geocoding.models import GeocodeResult, GeocodeStatus, RoadSegment
from geosynth.geometry import LatLng, LocalProjection, offset
from geosynth.streets import StreetGeometryResolver, find_intersection, slice_single_segment, stitch_segments

LAT = 42.69
PROJECTION = LocalProjection()
REFERENCE = LatLng(42.6977, 23.3219)


def seg(*points, way_id=None):
    return RoadSegment(tuple(LatLng(lat, lng) for lat, lng in points), way_id)


def east_west(lng_from, lng_to, lat=LAT):
    return seg((lat, lng_from), (lat, lng_to))


def north_south(lat_from, lat_to, lng):
    return seg((lat_from, lng), (lat_to, lng))


class FakeNetwork(RoadNetworkSource):
    def __init__(self, streets):
        self.streets = streets
        self.calls = []

    def fetch_road_segments(self, street_name):
        self.calls.append(street_name)
        return list(self.streets.get(street_name, []))


class FakeAddressGeocoder(AddressGeocoder):
    name = "fake"

    def __init__(self, point):
        self.point = point
        self.calls = []

    def geocode(self, text):
        self.calls.append(text)
        return GeocodeResult(query=text, status=GeocodeStatus.OK, lat=self.point.lat, lng=self.point.lng)


# --- find_intersection --------------------------------------------------------


def test_single_crossing_is_exact():
    point = find_intersection(
        [east_west(23.32, 23.34)], [north_south(42.68, 42.70, 23.33)], PROJECTION, REFERENCE
    )
    assert point.lat == pytest.approx(LAT, abs=1e-5)
    assert point.lng == pytest.approx(23.33, abs=1e-5)


def test_several_crossings_pick_the_one_nearest_the_reference():
    a = [east_west(23.32, 23.34)]
    b = [north_south(42.68, 42.70, 23.325), north_south(42.68, 42.70, 23.335)]

    near_east = find_intersection(a, b, PROJECTION, LatLng(LAT, 23.336))
    near_west = find_intersection(a, b, PROJECTION, LatLng(LAT, 23.324))

    assert near_east.lng == pytest.approx(23.335, abs=1e-5)
    assert near_west.lng == pytest.approx(23.325, abs=1e-5)


def test_parallel_streets_within_buffer_use_the_overlap_center():
    b_lat = offset(LatLng(LAT, 23.33), north_m=20).lat
    point = find_intersection(
        [east_west(23.32, 23.34)], [east_west(23.32, 23.34, lat=b_lat)], PROJECTION, REFERENCE
    )

    assert point is not None
    assert LAT <= point.lat <= b_lat
    assert point.lng == pytest.approx(23.33, abs=1e-4)


def test_near_miss_snaps_to_the_closest_point():
    a = [seg((LAT, 23.32), (LAT, 23.33), (LAT, 23.34))]
    bottom = offset(LatLng(LAT, 23.33), north_m=100)
    b = [north_south(bottom.lat, bottom.lat + 0.005, 23.33)]

    point = find_intersection(a, b, PROJECTION, REFERENCE)

    assert point is not None
    assert point.distance_to(bottom) < 1.0


def test_streets_too_far_apart_have_no_intersection():
    far_lat = offset(LatLng(LAT, 23.33), north_m=500).lat
    assert find_intersection(
        [east_west(23.32, 23.34)], [east_west(23.32, 23.34, lat=far_lat)], PROJECTION, REFERENCE
    ) is None


def test_missing_geometry_has_no_intersection():
    assert find_intersection([], [east_west(23.32, 23.34)], PROJECTION, REFERENCE) is None


# --- slicing and stitching ----------------------------------------------------


def test_slice_single_segment_runs_from_start_to_end():
    segments = [east_west(23.32, 23.34)]

    forward = slice_single_segment(segments, LatLng(LAT, 23.325), LatLng(LAT, 23.335), PROJECTION)
    backward = slice_single_segment(segments, LatLng(LAT, 23.335), LatLng(LAT, 23.325), PROJECTION)

    assert forward[0].lng == pytest.approx(23.325, abs=1e-5)
    assert forward[-1].lng == pytest.approx(23.335, abs=1e-5)
    assert backward[0].lng == pytest.approx(23.335, abs=1e-5)
    assert backward[-1].lng == pytest.approx(23.325, abs=1e-5)


def test_slice_requires_both_points_near_the_segment():
    assert slice_single_segment(
        [east_west(23.32, 23.325)], LatLng(LAT, 23.321), LatLng(LAT, 23.335), PROJECTION
    ) is None


def test_stitching_orients_and_chains_segments():
    segments = [
        east_west(23.320, 23.325),
        east_west(23.330, 23.325),  # stored against the direction of travel
        east_west(23.330, 23.335),
    ]

    path = stitch_segments(segments, LatLng(LAT, 23.3205), LatLng(LAT, 23.3345), PROJECTION)

    assert path is not None
    assert [round(c.lng, 3) for c in path.coordinates] == [23.320, 23.325, 23.330, 23.335]
    assert path.segments[1].first.lng == 23.325


def test_stitching_orients_the_first_segment_from_the_start_point():
    segments = [east_west(23.325, 23.320), east_west(23.330, 23.325)]

    path = stitch_segments(segments, LatLng(LAT, 23.3205), LatLng(LAT, 23.330), PROJECTION)

    assert path.segments[0].first.lng == 23.320
    assert [round(c.lng, 3) for c in path.coordinates] == [23.320, 23.325, 23.330]


def test_stitching_stops_at_gaps_wider_than_the_tolerance():
    segments = [east_west(23.320, 23.325), east_west(23.330, 23.335)]

    path = stitch_segments(segments, LatLng(LAT, 23.3205), LatLng(LAT, 23.3345), PROJECTION)

    assert len(path) == 1


def test_stitching_honours_the_segment_budget():
    lngs = [23.320 + i * 0.001 for i in range(6)]
    segments = [east_west(a, b) for a, b in zip(lngs, lngs[1:])]

    path = stitch_segments(segments, LatLng(LAT, 23.320), LatLng(LAT, 23.325), PROJECTION, max_segments=2)

    assert len(path) == 2


def test_stitching_with_nothing_nearby_gives_none():
    assert stitch_segments([east_west(23.40, 23.41)], LatLng(LAT, 23.32), LatLng(LAT, 23.33), PROJECTION) is None


# --- resolver -----------------------------------------------------------------


def _resolver(streets, address_geocoder=None):
    network = FakeNetwork(streets)
    return StreetGeometryResolver(network, projection=PROJECTION, address_geocoder=address_geocoder), network


def test_resolver_memoizes_street_geometry():
    resolver, network = _resolver({
        "ул. Оборище": [east_west(23.32, 23.34)],
        "ул. Шипка": [north_south(42.68, 42.70, 23.33)],
        "ул. Раковски": [north_south(42.68, 42.70, 23.325)],
    })

    resolver.resolve_intersection("ул. Оборище", "ул. Шипка")
    resolver.resolve_intersection("ул. Оборище", "ул. Раковски")
    resolver.street_section("ул. Оборище", LatLng(LAT, 23.325), LatLng(LAT, 23.33))

    assert network.calls.count("ул. Оборище") == 1
    resolver.clear()
    resolver.segments("ул. Оборище")
    assert network.calls.count("ул. Оборище") == 2


def test_resolver_skips_second_lookup_when_first_street_is_unknown():
    resolver, network = _resolver({"ул. Шипка": [north_south(42.68, 42.70, 23.33)]})
    assert resolver.resolve_intersection("ул. Няма", "ул. Шипка") is None
    assert network.calls == ["ул. Няма"]


def test_resolver_rejects_intersections_outside_the_service_area():
    resolver, _ = _resolver({
        "A": [seg((43.5, 24.0), (43.5, 24.2))],
        "B": [seg((43.4, 24.1), (43.6, 24.1))],
    })
    assert resolver.resolve_intersection("A", "B") is None


def test_resolver_geocodes_numbered_addresses_through_the_address_geocoder():
    geocoder = FakeAddressGeocoder(LatLng(42.695, 23.337))
    resolver, network = _resolver({}, address_geocoder=geocoder)

    result = resolver.geocode("ул. Оборище 12")

    assert result.coordinates == LatLng(42.695, 23.337)
    assert geocoder.calls == ["ул. Оборище 12"]
    assert network.calls == []


def test_resolver_geocodes_bare_street_names_to_their_center():
    resolver, _ = _resolver({"ул. Оборище": [east_west(23.32, 23.33), east_west(23.33, 23.34)]})

    result = resolver.geocode("ул. Оборище")

    assert result.status == GeocodeStatus.OK
    assert result.lat == pytest.approx(LAT, abs=1e-5)
    assert result.lng == pytest.approx(23.33, abs=1e-4)


def test_resolver_geocode_unknown_street():
    resolver, _ = _resolver({})
    assert resolver.geocode("ул. Няма").status == GeocodeStatus.NOT_FOUND


def test_street_section_prefers_a_single_segment():
    resolver, _ = _resolver({"ул. Оборище": [east_west(23.32, 23.34)]})
    coords = resolver.street_section("ул. Оборище", LatLng(LAT, 23.325), LatLng(LAT, 23.335))
    assert coords[0].lng == pytest.approx(23.325, abs=1e-5)
    assert coords[-1].lng == pytest.approx(23.335, abs=1e-5)


def test_street_section_unknown_street():
    resolver, _ = _resolver({})
    assert resolver.street_section("ул. Няма", LatLng(LAT, 23.32), LatLng(LAT, 23.33)) is None
