from weather_errors.weather_errors import (
    InvalidRange,
    LocationNotFound,
    RecordNotFound,
    UnsupportedExportFormat,
    UpstreamFetchFailure,
    WeatherServiceError,
)

__all__ = [
    "InvalidRange",
    "LocationNotFound",
    "RecordNotFound",
    "UnsupportedExportFormat",
    "UpstreamFetchFailure",
    "WeatherServiceError",
]
