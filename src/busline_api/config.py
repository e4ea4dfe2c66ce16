"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Bus 80 Tracker API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Upstream endpoints
    ovapi_base_url: str = Field(
        default="http://v0.ovapi.nl",
        validation_alias=AliasChoices("OVAPI_BASE_URL", "OVAPI_URL"),
    )
    gtfs_vehicle_positions_url: str = Field(
        default="https://gtfs.ovapi.nl/nl/vehiclePositions.pb",
        validation_alias=AliasChoices("VEHICLE_POSITIONS_URL", "GTFS_VEHICLE_POSITIONS_URL"),
    )
    gtfs_trip_updates_url: str = Field(
        default="https://gtfs.ovapi.nl/nl/tripUpdates.pb",
        validation_alias=AliasChoices("TRIP_UPDATES_URL", "GTFS_TRIP_UPDATES_URL"),
    )
    gtfs_static_url: str = Field(
        default="http://gtfs.ovapi.nl/nl/gtfs-nl.zip",
        validation_alias=AliasChoices("STATIC_GTFS_URL", "GTFS_STATIC_URL"),
    )
    user_agent: str = "Bus80Tracker/1.0 (community project)"

    # Line identity
    operator_code: str = "CXX"
    agency_name: str = "connexxion"
    line_public_number: str = "80"
    night_line_planning_number: str = "N286"

    # Default stop: Halfweg, Station Halfweg-Zwanenburg (direction -> Amsterdam)
    default_tpc: str = "55230110"
    default_direction: Literal[1, 2] = 1

    direction1_name: str = "Zandvoort → Amsterdam"
    direction2_name: str = "Amsterdam → Zandvoort"
    direction1_destination: str = "Amsterdam Elandsgracht"
    direction2_destination: str = "Zandvoort Centrum"

    # Polling
    vehicle_poll_interval_sec: float = 30
    trip_update_poll_interval_sec: float = 30
    departure_poll_interval_sec: float = 30
    max_backoff_sec: float = 300
    poll_start_delay_sec: float = 5
    fetch_timeout_sec: int = 30
    gtfs_rt_max_retries: int = Field(default=1, ge=1, le=10)
    gtfs_rt_backoff_base: float = 2.0
    poller_auto_start: bool = True

    # Reference data refresh
    reference_check_interval_sec: float = 24 * 60 * 60
    staleness_threshold: int = Field(default=5, ge=1)
    operating_start_hour: int = Field(default=6, ge=0, le=23)
    operating_end_hour: int = Field(default=1, ge=0, le=23)
    local_timezone: str = "Europe/Amsterdam"
    route_data_path: str = "./data/route.json"
    gtfs_download_dir: str = "./data/.gtfs-tmp"
    gtfs_download_timeout_sec: int = 300

    # Reconciliation
    match_tolerance_minutes: float = 10
    departed_grace_sec: int = 60

    # Live channel
    sse_heartbeat_sec: float = 25
    sse_queue_size: int = 10


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
