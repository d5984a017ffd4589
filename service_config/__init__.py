from service_config.service_config import (
    ARCHIVE_URL,
    FORECAST_URL,
    GEOCODE_URL,
    HttpSession,
    REVERSE_GEOCODE_URL,
    ServiceConfig,
    cors_origins,
    create_session,
    default_database_url,
)

__all__ = [
    "ARCHIVE_URL",
    "FORECAST_URL",
    "GEOCODE_URL",
    "HttpSession",
    "REVERSE_GEOCODE_URL",
    "ServiceConfig",
    "cors_origins",
    "create_session",
    "default_database_url",
]
