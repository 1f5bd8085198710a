from .google import GoogleDirectionsAdapter, GoogleGeocodingAdapter, decode_polyline
from .mapbox import MapboxGeocodingAdapter
from .nominatim import NominatimAdapter
from .overpass import OverpassAdapter, build_overpass_query, parse_overpass_elements

__all__ = [
    "GoogleDirectionsAdapter",
    "GoogleGeocodingAdapter",
    "MapboxGeocodingAdapter",
    "NominatimAdapter",
    "OverpassAdapter",
    "build_overpass_query",
    "decode_polyline",
    "parse_overpass_elements",
]
