from weather_aggregator.weather_aggregator import (
    SOURCE_ARCHIVE,
    SOURCE_ARCHIVE_FORECAST,
    SOURCE_FORECAST,
    SOURCES,
    AggregatedWeather,
    DailySummaryRow,
    DateRangePartition,
    WeatherAggregator,
    WeatherIcon,
    icon_for_code,
    partition_date_range,
    summarize_daily,
)

__all__ = [
    "SOURCE_ARCHIVE",
    "SOURCE_ARCHIVE_FORECAST",
    "SOURCE_FORECAST",
    "SOURCES",
    "AggregatedWeather",
    "DailySummaryRow",
    "DateRangePartition",
    "WeatherAggregator",
    "WeatherIcon",
    "icon_for_code",
    "partition_date_range",
    "summarize_daily",
]
