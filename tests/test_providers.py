from __future__ import annotations

from urllib.parse import quote

import pytest
import requests

from conftest import FakeResponse, FakeSession
from geosynth.geocoding.factory import ProviderKind, ProviderRegistry
from geosynth.geocoding.models import GeocodeStatus, SOFIA
from geosynth.geocoding.providers import (
    GoogleDirectionsAdapter,
    GoogleGeocodingAdapter,
    MapboxGeocodingAdapter,
    NominatimAdapter,
    OverpassAdapter,
    build_overpass_query,
    decode_polyline,
    parse_overpass_elements,
)
from geosynth.geocoding.providers.http import HttpProvider, params_json
from geosynth.geocoding.throttling import ProviderFamily
from geosynth.geometry import LatLng
from geosynth.settings import Settings
from geosynth.utils.errors import ProviderUnavailableError


def _google_candidate(lat, lng, locality="Sofia", formatted="somewhere"):
    return {
        "formatted_address": formatted,
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "address_components": [{"long_name": locality, "types": ["locality", "political"]}],
    }


# --- http ---------------------------------------------------------------------


def test_http_provider_retries_then_raises(monkeypatch):
    monkeypatch.setattr("geosynth.geocoding.providers.http.time.sleep", lambda s: None)
    session = FakeSession([requests.ConnectionError("boom"), FakeResponse(None, status_code=503, text="busy")])
    provider = HttpProvider(session=session, max_retries=2)

    with pytest.raises(ProviderUnavailableError) as excinfo:
        provider._get_json("https://example.test/api")

    assert excinfo.value.http_status == 503
    assert len(session.calls) == 2
    assert all(call["timeout"] == 25.0 for call in session.calls)


def test_http_provider_invalid_json_is_unavailable():
    session = FakeSession([FakeResponse(ValueError("not json"), text="<html>")])
    with pytest.raises(ProviderUnavailableError):
        HttpProvider(session=session)._get_json("https://example.test/api")


def test_params_json_masks_the_api_key():
    assert '"***"' in params_json({"address": "x", "key": "secret"})
    assert "secret" not in params_json({"address": "x", "key": "secret"})


# --- google geocoding ---------------------------------------------------------


def test_google_geocode_prefers_locality_match_inside_the_area():
    session = FakeSession([FakeResponse({
        "status": "OK",
        "results": [
            _google_candidate(48.85, 2.35, locality="Paris"),
            _google_candidate(42.65, 23.25, locality="Bankya"),
            _google_candidate(42.69, 23.33, locality="Sofia", formatted="ul. Shipka, Sofia"),
        ],
    })])
    adapter = GoogleGeocodingAdapter("key", session=session)

    result = adapter.geocode("ул. Шипка")

    assert result.status == GeocodeStatus.OK
    assert (result.lat, result.lng) == (42.69, 23.33)
    assert result.formatted_address == "ul. Shipka, Sofia"
    assert session.calls[0]["params"]["address"] == "ул. Шипка, Sofia, Bulgaria"


def test_google_geocode_falls_back_to_first_in_area_candidate():
    session = FakeSession([FakeResponse({
        "status": "OK",
        "results": [_google_candidate(42.65, 23.25, locality="Bankya")],
    })])
    result = GoogleGeocodingAdapter("key", session=session).geocode("Банкя")
    assert result.coordinates.lat == 42.65


def test_google_geocode_out_of_area():
    session = FakeSession([FakeResponse({"status": "OK", "results": [_google_candidate(48.85, 2.35, "Paris")]})])
    result = GoogleGeocodingAdapter("key", session=session).geocode("Rue de Rivoli")
    assert result.status == GeocodeStatus.OUT_OF_AREA
    assert result.coordinates is None


def test_google_geocode_statuses():
    session = FakeSession([
        FakeResponse({"status": "ZERO_RESULTS", "results": []}),
        FakeResponse({"status": "REQUEST_DENIED", "error_message": "bad key"}),
        FakeResponse(None, status_code=500, text="oops"),
    ])
    adapter = GoogleGeocodingAdapter("key", session=session)

    assert adapter.geocode("a").status == GeocodeStatus.NOT_FOUND
    denied = adapter.geocode("b")
    assert denied.status == GeocodeStatus.API_ERROR
    assert denied.errors[0].api_message == "bad key"
    assert adapter.geocode("c").status == GeocodeStatus.API_ERROR


def test_google_geocode_without_key_makes_no_request():
    session = FakeSession()
    result = GoogleGeocodingAdapter(None, session=session).geocode("ул. Шипка")
    assert result.status == GeocodeStatus.API_ERROR
    assert session.calls == []


def test_google_geocode_blank_input():
    assert GoogleGeocodingAdapter("key", session=FakeSession()).geocode("  ").status == GeocodeStatus.INVALID_INPUT


# --- google directions --------------------------------------------------------


def test_directions_intersection_is_end_of_first_step():
    session = FakeSession([FakeResponse({
        "status": "OK",
        "routes": [{"legs": [{"steps": [{"end_location": {"lat": 42.6951, "lng": 23.3372}}]}]}],
    })])
    adapter = GoogleDirectionsAdapter("key", session=session)

    point = adapter.resolve_intersection("ул. Оборище", "ул. Шипка")

    assert (point.lat, point.lng) == (42.6951, 23.3372)
    assert session.calls[0]["params"]["mode"] == "driving"


def test_directions_without_route_geocodes_the_pair():
    session = FakeSession([
        FakeResponse({"status": "ZERO_RESULTS", "routes": []}),
        FakeResponse({"status": "OK", "results": [_google_candidate(42.70, 23.33)]}),
    ])
    geocoder = GoogleGeocodingAdapter("key", session=session)
    adapter = GoogleDirectionsAdapter("key", geocoder=geocoder, session=session)

    point = adapter.resolve_intersection("ул. Оборище", "ул. Шипка")

    assert (point.lat, point.lng) == (42.70, 23.33)
    assert session.calls[1]["params"]["address"].startswith("ул. Оборище and ул. Шипка")


def test_decode_polyline_reference_example():
    coords = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    assert [(round(c.lat, 5), round(c.lng, 5)) for c in coords] == [
        (38.5, -120.2),
        (40.7, -120.95),
        (43.252, -126.453),
    ]


def test_route_line_decodes_overview_polyline():
    session = FakeSession([FakeResponse({
        "status": "OK",
        "routes": [{"legs": [], "overview_polyline": {"points": "_p~iF~ps|U_ulLnnqC_mqNvxq`@"}}],
    })])
    line = GoogleDirectionsAdapter("key", session=session).route_line(SOFIA.center, SOFIA.center)
    assert len(line) == 3


# --- nominatim ----------------------------------------------------------------


def test_nominatim_bounded_query_and_first_in_area_result():
    session = FakeSession([FakeResponse([
        {"lat": "48.85", "lon": "2.35", "display_name": "Paris"},
        {"lat": "42.6951", "lon": "23.3372", "display_name": "Оборище 12, София"},
    ])])
    adapter = NominatimAdapter(session=session, user_agent="geosynth-tests")

    result = adapter.geocode("ул. Оборище 12")

    assert result.status == GeocodeStatus.OK
    assert result.formatted_address == "Оборище 12, София"
    call = session.calls[0]
    assert call["params"]["q"] == "ул. Оборище 12, София, България"
    assert call["params"]["bounded"] == 1
    assert call["params"]["viewbox"] == "23.188,42.605,23.528,42.788"
    assert call["headers"]["User-Agent"] == "geosynth-tests"


def test_nominatim_keeps_queries_that_name_the_city():
    session = FakeSession([FakeResponse([])])
    result = NominatimAdapter(session=session).geocode("Оборище 12, София")
    assert session.calls[0]["params"]["q"] == "Оборище 12, София"
    assert result.status == GeocodeStatus.NOT_FOUND


def test_nominatim_all_results_out_of_area():
    session = FakeSession([FakeResponse([{"lat": "48.85", "lon": "2.35"}])])
    assert NominatimAdapter(session=session).geocode("Rivoli").status == GeocodeStatus.OUT_OF_AREA


# --- mapbox -------------------------------------------------------------------


def _mapbox_feature(lat, lng, place_name="somewhere"):
    return {"place_name": place_name, "geometry": {"type": "Point", "coordinates": [lng, lat]}}


def test_mapbox_geocode_biases_toward_the_center():
    session = FakeSession([FakeResponse({"features": [_mapbox_feature(42.6951, 23.3372, "Оборище 12, София")]})])
    adapter = MapboxGeocodingAdapter("tok", session=session)

    result = adapter.geocode("ул. Оборище 12")

    assert result.status == GeocodeStatus.OK
    assert (result.lat, result.lng) == (42.6951, 23.3372)
    assert result.formatted_address == "Оборище 12, София"
    call = session.calls[0]
    assert call["url"].startswith("https://api.mapbox.com/geocoding/v5/mapbox.places/")
    assert call["url"].endswith(".json")
    assert " " not in call["url"]
    assert call["params"]["types"] == "address,poi"
    assert call["params"]["proximity"] == "23.3219,42.6977"
    assert call["params"]["country"] == "bg"
    assert call["params"]["access_token"] == "tok"


def test_mapbox_intersection_retries_with_narrower_types():
    session = FakeSession([
        FakeResponse({"features": []}),
        FakeResponse({"features": [_mapbox_feature(42.6951, 23.3372)]}),
    ])
    adapter = MapboxGeocodingAdapter("tok", session=session)

    point = adapter.resolve_intersection("ул. Оборище", "ул. Шипка")

    assert (point.lat, point.lng) == (42.6951, 23.3372)
    assert [c["params"]["types"] for c in session.calls] == ["poi,address", "address"]
    assert session.calls[0]["url"] == session.calls[1]["url"]
    assert quote("ул. Оборище и ул. Шипка, София", safe="") in session.calls[0]["url"]


def test_mapbox_intersection_moves_on_after_an_http_error(monkeypatch):
    monkeypatch.setattr("geosynth.geocoding.providers.http.time.sleep", lambda s: None)
    session = FakeSession([
        FakeResponse(None, status_code=500, text="oops"),
        FakeResponse({"features": [_mapbox_feature(42.6951, 23.3372)]}),
    ])
    point = MapboxGeocodingAdapter("tok", session=session).resolve_intersection("ул. Оборище", "ул. Шипка")
    assert point == LatLng(42.6951, 23.3372)


def test_mapbox_discards_out_of_area_features():
    session = FakeSession([
        FakeResponse({"features": [_mapbox_feature(48.85, 2.35, "Paris")]}),
        FakeResponse({"features": [_mapbox_feature(48.85, 2.35, "Paris")]}),
        FakeResponse({"features": [_mapbox_feature(48.85, 2.35, "Paris")]}),
        FakeResponse({"features": [_mapbox_feature(48.85, 2.35, "Paris"), _mapbox_feature(42.69, 23.33, "Sofia")]}),
    ])
    adapter = MapboxGeocodingAdapter("tok", session=session)

    assert adapter.geocode("Rue de Rivoli").status == GeocodeStatus.OUT_OF_AREA
    assert adapter.resolve_intersection("A", "B") is None
    assert len(session.calls) == 3

    assert adapter.geocode("ул. Шипка").formatted_address == "Sofia"


def test_mapbox_keeps_queries_that_name_the_city():
    session = FakeSession([FakeResponse({"features": []})])
    result = MapboxGeocodingAdapter("tok", session=session).geocode("Оборище 12, София")
    assert result.status == GeocodeStatus.NOT_FOUND
    assert session.calls[0]["url"].endswith(f"/{quote('Оборище 12, София', safe='')}.json")


def test_mapbox_without_token_makes_no_request():
    session = FakeSession()
    adapter = MapboxGeocodingAdapter(None, session=session)
    result = adapter.geocode("ул. Шипка")
    assert result.status == GeocodeStatus.API_ERROR
    assert result.errors[0].error_label == "missing_access_token"
    assert adapter.resolve_intersection("A", "B") is None
    assert session.calls == []


def test_mapbox_error_record_masks_the_token(monkeypatch):
    monkeypatch.setattr("geosynth.geocoding.providers.http.time.sleep", lambda s: None)
    session = FakeSession([FakeResponse(None, status_code=401, text="Not Authorized")])
    result = MapboxGeocodingAdapter("secret-token", session=session).geocode("ул. Шипка")
    assert result.status == GeocodeStatus.API_ERROR
    assert "secret-token" not in result.errors[0].params_json


def test_registry_builds_mapbox_with_its_own_rate_gate():
    registry = ProviderRegistry(Settings(mapbox_access_token="tok", min_delay_mapbox_s=0.3), session=FakeSession())

    resolver = registry.intersection_resolver(ProviderKind.MAPBOX)

    assert isinstance(resolver, MapboxGeocodingAdapter)
    assert registry.address_geocoder("mapbox_geocoding") is resolver
    assert resolver.access_token == "tok"
    assert resolver.rate_limiter is registry.gates[ProviderFamily.MAPBOX]
    assert resolver.rate_limiter.min_delay_s == pytest.approx(0.3)


# --- overpass -----------------------------------------------------------------


def test_overpass_query_for_main_streets():
    query = build_overpass_query('бул. „Витоша"', SOFIA.overpass_bbox)
    assert query.startswith("[out:json][timeout:25];")
    assert '["name"~"витоша",i]' in query
    assert '["name:bg"~"витоша",i]' in query
    assert "residential" not in query
    assert query.endswith("out geom;")


def test_overpass_query_for_streets_includes_residential():
    query = build_overpass_query("ул. Оборище", SOFIA.overpass_bbox)
    assert "residential" in query
    assert "living_street" in query


def test_overpass_query_for_squares():
    query = build_overpass_query("пл. Славейков", SOFIA.overpass_bbox)
    assert 'node["place"="square"]' in query
    assert 'way["place"="square"]' in query
    assert "highway" not in query


def test_overpass_query_escapes_regex_characters_in_names():
    query = build_overpass_query("ул. Граф Игнатиев (стара)+", SOFIA.overpass_bbox)
    assert r'["name"~"граф игнатиев \\(стара\\)\\+",i]' in query

    square = build_overpass_query("пл. Св. Неделя", SOFIA.overpass_bbox)
    assert '["name"~"св. неделя",i]' in square


def test_parse_overpass_elements():
    segments = parse_overpass_elements([
        {"type": "way", "id": 1, "geometry": [{"lat": 42.1234567, "lon": 23.1}, {"lat": 42.2, "lon": 23.2}]},
        {"type": "way", "id": 2, "geometry": [{"lat": 42.1, "lon": 23.1}]},
        {"type": "node", "id": 3, "lat": 42.5, "lon": 23.5},
    ])

    assert [s.way_id for s in segments] == [1, 3]
    assert segments[0].first.lat == 42.123457
    node = segments[1]
    assert len(node) == 2
    assert node.first.lat < 42.5 < node.last.lat


def test_overpass_tries_mirrors_in_order():
    session = FakeSession([
        requests.Timeout("slow"),
        FakeResponse(None, status_code=429, text="too many"),
        FakeResponse({"elements": [
            {"type": "way", "id": 7, "geometry": [{"lat": 42.69, "lon": 23.33}, {"lat": 42.70, "lon": 23.34}]},
        ]}),
    ])
    adapter = OverpassAdapter(instances=["https://a.test", "https://b.test", "https://c.test"], session=session)

    segments = adapter.fetch_road_segments("ул. Оборище")

    assert [c["url"] for c in session.calls] == ["https://a.test", "https://b.test", "https://c.test"]
    assert all(c["method"] == "POST" for c in session.calls)
    assert "data" in session.calls[0]["data"]
    assert len(segments) == 1


def test_overpass_all_mirrors_failing_gives_no_segments():
    session = FakeSession([requests.ConnectionError("down")] * 2)
    adapter = OverpassAdapter(instances=["https://a.test", "https://b.test"], session=session)
    assert adapter.fetch_road_segments("ул. Оборище") == []
