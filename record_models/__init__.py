from record_models.record_models import (
    Base,
    Clock,
    DatabaseEngine,
    RecordDatabase,
    WeatherQuery,
    WeatherRecord,
    WeatherSnapshot,
    as_utc,
    utc_now,
)

__all__ = [
    "Base",
    "Clock",
    "DatabaseEngine",
    "RecordDatabase",
    "WeatherQuery",
    "WeatherRecord",
    "WeatherSnapshot",
    "as_utc",
    "utc_now",
]
