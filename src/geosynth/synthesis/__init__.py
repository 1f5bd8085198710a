from .closure import ClosureSynthesizer, CenterlineSource, StreetClass, buffer_line_string, classify_street
from .converter import convert_to_features, missing_addresses
from .features import FeatureCollection, FeatureType, GeoFeature
from .incident import incident_geometry, select_incident_geometry

__all__ = [
    "CenterlineSource",
    "ClosureSynthesizer",
    "FeatureCollection",
    "FeatureType",
    "GeoFeature",
    "StreetClass",
    "buffer_line_string",
    "classify_street",
    "convert_to_features",
    "incident_geometry",
    "missing_addresses",
    "select_incident_geometry",
]
