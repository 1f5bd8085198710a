from pathlib import Path
import os

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    # Strategy and provider slots
    strategy: str = 'split'
    pin_provider: str = 'google_geocoding'
    street_provider: str = 'overpass'
    fallback_provider: str = 'google_geocoding'
    centerline_source: str = 'network'

    # Service area (Sofia by default)
    service_area_name: str = 'Sofia'
    service_area_country: str = 'Bulgaria'
    bounds_south: float = 42.605
    bounds_west: float = 23.188
    bounds_north: float = 42.788
    bounds_east: float = 23.528
    center_lat: float = 42.6977
    center_lng: float = 23.3219
    proj_crs: str = 'EPSG:32634'

    # Street-class half widths in meters
    street_half_widths: dict[str, float] = {
        'boulevard': 13.0,
        'avenue': 9.0,
        'residential': 7.0,
    }

    # Minimum delay between consecutive calls, per provider family
    min_delay_google_s: float = 0.2
    min_delay_mapbox_s: float = 0.2
    min_delay_nominatim_s: float = 1.0
    min_delay_overpass_s: float = 0.5
    request_timeout_s: float = 25.0

    overpass_instances: list[str] = [
        'https://overpass.private.coffee/api/interpreter',
        'https://maps.mail.ru/osm/tools/overpass/api/interpreter',
        'https://overpass-api.de/api/interpreter',
        'https://overpass.osm.jp/api/interpreter',
    ]
    nominatim_url: str = 'https://nominatim.openstreetmap.org/search'
    nominatim_user_agent: str = 'geosynth/0.1'
    google_api_key: str | None = None
    mapbox_url: str = 'https://api.mapbox.com/geocoding/v5/mapbox.places'
    mapbox_access_token: str | None = None

    # Street geometry resolution
    max_stitch_segments: int = 10
    stitch_match_tolerance_m: float = 50.0
    stitch_end_tolerance_m: float = 10.0
    intersection_buffer_m: float = 30.0
    intersection_max_gap_m: float = 200.0
    degenerate_endpoint_m: float = 10.0

    # Notification ledger
    match_db_path: Path = Path(str(os.getenv('GEOSYNTH_MATCH_DB_PATH', 'data/matches.duckdb')))

    class Config:
        env_prefix = "GEOSYNTH_"
        env_file   = ".env"

    def get_google_api_key(self) -> str | None:
        """Return the Google Maps key, checking the usual environment names as a fallback."""
        if self.google_api_key:
            return self.google_api_key
        for name in ("GOOGLE_MAPS_API_KEY", "NEXT_PUBLIC_GOOGLE_MAPS_API_KEY", "GEOCODING_API_KEY"):
            val = os.getenv(name)
            if val:
                return val.strip()
        return None

    def get_mapbox_access_token(self) -> str | None:
        if self.mapbox_access_token:
            return self.mapbox_access_token
        val = os.getenv("MAPBOX_ACCESS_TOKEN")
        return val.strip() if val else None


settings = Settings()
