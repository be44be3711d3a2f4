"""Availability configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class AvailabilityConfig(BaseSettings):
    """Availability configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Snapshot sources
    data_dir: str = Field(
        default="data",
        description="Directory holding settings.json, bookings.json and course_sessions.json",
    )
    data_api_url: str = Field(
        default="",
        description="Studio data API base URL; when set it replaces the JSON files",
    )
    data_api_token: str = Field(
        default="",
        description="Bearer token sent to the data API (optional)",
    )
    data_api_timeout_seconds: float = Field(
        default=10.0,
        description="Per-request timeout for the data API",
    )

    # Booking rules
    protection_window_minutes: int = Field(
        default=120,
        description="Buffer around fixed classes and bookings of the same pool",
    )
    private_booking_threshold: int = Field(
        default=3,
        description="Group size from which a booking may sit outside fixed class times",
    )
    default_potters_capacity: int = Field(
        default=8,
        description="Potter's wheel seats when classCapacity does not say",
    )
    default_hand_work_capacity: int = Field(
        default=22,
        description="Hand modeling / painting seats when classCapacity does not say",
    )
    search_days: int = Field(
        default=60,
        description="Default number of days scanned by range searches",
    )
    no_refund_horizon_hours: int = Field(
        default=48,
        description="Bookings closer than this are accepted without refunds",
    )

    # HTTP endpoint
    server_host: str = Field(default="127.0.0.1", description="Bind address")
    server_port: int = Field(default=9000, description="Bind port")

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: AvailabilityConfig | None = None


def get_config() -> AvailabilityConfig:
    """Get the availability configuration singleton.

    Returns:
        AvailabilityConfig: Availability configuration instance
    """
    global _config
    if _config is None:
        _config = AvailabilityConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
