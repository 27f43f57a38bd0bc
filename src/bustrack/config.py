"""Default settings for the bus tracking engine."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# STCP (Porto) static GTFS extract
GTFS_DATA_PATH = "data/stcp"

# Porto open-data datastore with live STCP vehicle positions
LIVE_FEED_URL = (
    "https://opendata.porto.digital/api/3/action/datastore_search"
    "?resource_id=072a27b1-e73a-4416-8d69-a1b70d540306"
)

REFRESH_INTERVAL_SECONDS = 15.0
LIVE_FEED_CACHE_TTL_SECONDS = 10.0
HTTP_TIMEOUT_SECONDS = 10.0

# Half-width of the cone in which a vehicle bearing agrees with the bearing to the next stop
ALIGNMENT_CONE_DEGREES = 45.0

NIGHT_SERVICE_SUFFIX = "M"
ZONAL_SERVICE_PREFIX = "Z"

UNKNOWN_HEADSIGN = "Unknown Destination"

ENV_PREFIX = "BUSTRACK_"


class TrackerConfig(BaseSettings):
    """
    Runtime configuration; every field falls back to the module default.

    Fields are read from BUSTRACK_* environment variables (or a .env file),
    e.g. BUSTRACK_GTFS_DATA_PATH or BUSTRACK_REFRESH_INTERVAL. Explicit
    keyword arguments take precedence.
    """
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    gtfs_data_path: str = GTFS_DATA_PATH
    live_feed_url: str = LIVE_FEED_URL
    refresh_interval: float = Field(default=REFRESH_INTERVAL_SECONDS, gt=0)
    live_feed_cache_ttl: float = Field(default=LIVE_FEED_CACHE_TTL_SECONDS, ge=0)
    http_timeout: float = Field(default=HTTP_TIMEOUT_SECONDS, gt=0)
    alignment_cone: float = Field(default=ALIGNMENT_CONE_DEGREES, gt=0, le=180)
    worker_threads: int = Field(default=0, ge=0)  # 0 runs heavy work inline
