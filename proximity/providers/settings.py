"""
Configuration settings for the proximity engine using Pydantic Settings.

This module centralizes configuration for the routing provider, the
PostgreSQL-backed stores, rate limits and authentication, using Pydantic
Settings for validation and type safety.
"""

from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any


class ProximitySettings(BaseSettings):
    """
    Settings for the proximity & travel-time engine.

    Uses Pydantic Settings to load and validate configuration from
    environment variables with proper type checking and defaults.
    """

    # Routing provider (Google Routes v2 + Distance Matrix)
    google_maps_api_key: Optional[str] = Field(
        default=None,
        alias="GOOGLE_MAPS_API_KEY",
        description="Google Maps Platform key; without it only the local approximation is used"
    )
    routes_api_url: str = Field(
        default="https://routes.googleapis.com/directions/v2:computeRoutes",
        alias="ROUTES_API_URL",
        description="Google Routes API computeRoutes endpoint"
    )
    distance_matrix_url: str = Field(
        default="https://maps.googleapis.com/maps/api/distancematrix/json",
        alias="DISTANCE_MATRIX_URL",
        description="Google Distance Matrix endpoint"
    )
    routes_drive_traffic_aware: bool = Field(
        default=False,
        alias="ROUTES_DRIVE_TRAFFIC_AWARE",
        description="Request traffic-aware durations for DRIVE routes"
    )
    routing_timeout_seconds: float = Field(
        default=10.0,
        alias="ROUTING_TIMEOUT_SECONDS",
        description="Timeout for each routing provider HTTP call"
    )

    # Stores
    store_timeout_seconds: float = Field(
        default=8.0,
        alias="STORE_TIMEOUT_SECONDS",
        description="Timeout for each cache / rate-limit / presence store call"
    )
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_database: str = Field(default="proximity", alias="POSTGRES_DATABASE")
    postgres_user: str = Field(default="proximity", alias="POSTGRES_USER")
    postgres_password: str = Field(default="proximity", alias="POSTGRES_PASSWORD")
    postgres_pool_max_size: int = Field(default=10, alias="POSTGRES_POOL_MAX_SIZE")

    # Rate limiting configuration
    rate_limit_fail_open: bool = Field(
        default=True,
        alias="RATE_LIMIT_FAIL_OPEN",
        description="Allow requests when the rate-limit store is unavailable"
    )
    rate_limit_nearby_per_minute: int = Field(
        default=30,
        alias="RATE_LIMIT_NEARBY_PER_MINUTE",
        description="Provider batch calls per viewer+IP per minute for ranking"
    )
    rate_limit_etas_per_minute: int = Field(
        default=20,
        alias="RATE_LIMIT_ETAS_PER_MINUTE",
        description="Point-to-point ETA requests per user+IP per minute"
    )
    rate_limit_travel_time_per_minute: int = Field(
        default=60,
        alias="RATE_LIMIT_TRAVEL_TIME_PER_MINUTE",
        description="Travel-time summary requests per IP per minute"
    )

    # Presence
    presence_max_age_seconds: int = Field(
        default=900,
        alias="PRESENCE_MAX_AGE_SECONDS",
        description="Public presence rows older than this are not ranked"
    )

    # Authentication (tokens are issued by the external auth layer)
    auth_jwt_secret: str = Field(
        default="change-me-in-production",
        alias="AUTH_JWT_SECRET",
        description="Shared secret used to verify bearer tokens"
    )
    auth_jwt_algorithm: str = Field(default="HS256", alias="AUTH_JWT_ALGORITHM")

    # API configuration
    proximity_host: str = Field(default="0.0.0.0", alias="PROXIMITY_HOST")
    proximity_port: int = Field(default=8001, alias="PROXIMITY_PORT")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_prefix": "",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def routing_configured(self) -> bool:
        """Whether a network routing provider can be used."""
        return bool(self.google_maps_api_key and self.google_maps_api_key.strip())

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary (secrets masked)."""
        data = self.model_dump()
        for secret in ("google_maps_api_key", "postgres_password", "auth_jwt_secret"):
            if data.get(secret):
                data[secret] = "***"
        return data


_settings: Optional[ProximitySettings] = None


def get_settings() -> ProximitySettings:
    """
    Get process settings instance (loaded once).

    Returns:
        Validated ProximitySettings instance
    """
    global _settings
    if _settings is None:
        _settings = ProximitySettings()
    return _settings


def reset_settings() -> None:
    """Reset cached settings (useful for testing)."""
    global _settings
    _settings = None
