"""Geocoding and geometric synthesis of street closures, with spatial matching against interest zones."""

__version__ = "0.1.0"
