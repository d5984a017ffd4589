from openmeteo_client.openmeteo_client import (
    DAILY_METRICS,
    HOURLY_METRICS,
    OpenMeteoArchiveClient,
    OpenMeteoClient,
    OpenMeteoForecastClient,
)

__all__ = [
    "DAILY_METRICS",
    "HOURLY_METRICS",
    "OpenMeteoArchiveClient",
    "OpenMeteoClient",
    "OpenMeteoForecastClient",
]
