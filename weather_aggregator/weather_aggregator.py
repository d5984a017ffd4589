"""Weather Aggregation Across Archive and Forecast Sources

This module combines the OpenMeteo archive and forecast sources into a single
weather snapshot for an inclusive date span. A span is split at the current
date: days before today come from the archive, today and later from the
forecast. When a span straddles today, both sources are fetched concurrently
and their daily summaries are concatenated, archive first.

Core Components:
- DateRangePartition / partition_date_range: Split a span into past and present/future
- WeatherIcon: Closed lookup table from WMO weather codes to glyph and label
- DailySummaryRow / summarize_daily: Condensed one-row-per-day view of a payload
- AggregatedWeather: Snapshot payload plus the source tag
- WeatherAggregator: Fetch-and-merge orchestration, current conditions, five day forecast

Source Tags:
- "archive": only past days were requested
- "forecast": only present/future days were requested
- "archive+forecast": the span straddles today

Note:
If either concurrent fetch fails, the whole aggregation fails. There is no
partial payload.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from openmeteo_client import OpenMeteoArchiveClient, OpenMeteoForecastClient

DateSpan = Tuple[date, date]

SOURCE_ARCHIVE = "archive"
SOURCE_FORECAST = "forecast"
SOURCE_ARCHIVE_FORECAST = "archive+forecast"
SOURCES = (SOURCE_FORECAST, SOURCE_ARCHIVE, SOURCE_ARCHIVE_FORECAST)


@dataclass(frozen=True)
class DateRangePartition:
    past: Optional[DateSpan] = None
    present_future: Optional[DateSpan] = None

    @property
    def source(self) -> str:
        if self.past and self.present_future:
            return SOURCE_ARCHIVE_FORECAST
        if self.past:
            return SOURCE_ARCHIVE
        return SOURCE_FORECAST


def partition_date_range(start: date, end: date, today: date) -> DateRangePartition:
    """Split an inclusive date span into a past and a present/future sub-span.

    The sub-spans are contiguous and never share a day: when the span straddles
    today, the past sub-span ends yesterday and the present/future one starts today.

    Args:
        start (date): First day of the span.
        end (date): Last day of the span, not before start.
        today (date): Current calendar date (UTC).

    Returns:
        DateRangePartition: Sub-spans, absent when empty.
    """
    if end < today:
        return DateRangePartition(past=(start, end))
    if start > today:
        return DateRangePartition(present_future=(start, end))

    past = (start, today - timedelta(days=1)) if start < today else None

    return DateRangePartition(past=past, present_future=(today, end))


class WeatherIcon(Enum):
    """WMO weather interpretation codes grouped by glyph.

    Each member holds (glyph, label, codes). Codes outside every group map to UNKNOWN.
    """

    CLEAR = ("\u2600\ufe0f", "Clear sky", (0,))
    MAINLY_CLEAR = ("\U0001f324\ufe0f", "Mainly clear", (1,))
    PARTLY_CLOUDY = ("\u26c5", "Partly cloudy", (2,))
    OVERCAST = ("\u2601\ufe0f", "Overcast", (3,))
    FOG = ("\U0001f32b\ufe0f", "Fog", (45, 48))
    LIGHT_RAIN = ("\U0001f326\ufe0f", "Light drizzle or rain", (51, 53, 61))
    RAIN = ("\U0001f327\ufe0f", "Rain", (55, 63, 65, 66, 67, 80, 81))
    SNOW = ("\U0001f328\ufe0f", "Snow", (71, 73, 85))
    HEAVY_SNOW = ("\u2744\ufe0f", "Heavy snow", (75, 77, 86))
    THUNDERSTORM = ("\u26c8\ufe0f", "Thunderstorm", (82, 95, 96, 97))
    UNKNOWN = ("\u2753", "Unknown", ())

    def __init__(self, glyph: str, label: str, codes: Tuple[int, ...]) -> None:
        self.glyph = glyph
        self.label = label
        self.codes = codes

    @classmethod
    def from_code(cls, code: Any) -> "WeatherIcon":
        """Look up the icon for a weather code, UNKNOWN when absent or unrecognized."""
        if isinstance(code, bool) or not isinstance(code, (int, float)):
            return cls.UNKNOWN
        if isinstance(code, float) and not code.is_integer():
            return cls.UNKNOWN

        return _ICONS_BY_CODE.get(int(code), cls.UNKNOWN)


_ICONS_BY_CODE: Dict[int, WeatherIcon] = {
    code: icon for icon in WeatherIcon for code in icon.codes
}


def icon_for_code(code: Any) -> str:
    return WeatherIcon.from_code(code).glyph


@dataclass
class DailySummaryRow:
    date: str
    tmin: Optional[float]
    tmax: Optional[float]
    precip: Optional[float]
    weathercode: Optional[int]
    icon: str


def _value_at(values: Any, index: int) -> Any:
    if isinstance(values, list) and index < len(values):
        return values[index]
    return None


def summarize_daily(payload: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Condense a raw OpenMeteo payload into one row per calendar day.

    Missing arrays or short arrays yield None for the affected fields. Both the
    "weathercode" and "weather_code" spellings of the daily code array are accepted.

    Args:
        payload (Dict[str, Any] | None): Raw archive or forecast payload.

    Returns:
        List[Dict[str, Any]]: DailySummaryRow dictionaries in payload order.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("daily"), dict):
        return []

    daily = payload["daily"]
    days = daily.get("time") if isinstance(daily.get("time"), list) else []
    codes = daily.get("weathercode", daily.get("weather_code"))

    rows = []
    for idx, day in enumerate(days):
        code = _value_at(codes, idx)
        rows.append(
            asdict(
                DailySummaryRow(
                    date=day,
                    tmin=_value_at(daily.get("temperature_2m_min"), idx),
                    tmax=_value_at(daily.get("temperature_2m_max"), idx),
                    precip=_value_at(daily.get("precipitation_sum"), idx),
                    weathercode=code,
                    icon=icon_for_code(code),
                )
            )
        )

    return rows


@dataclass
class AggregatedWeather:
    source: str
    latitude: float
    longitude: float
    archive: Optional[Dict[str, Any]] = None
    forecast: Optional[Dict[str, Any]] = None
    daily_summary: List[Dict[str, Any]] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        """Snapshot payload as persisted; absent sources are omitted."""
        payload: Dict[str, Any] = {"latitude": self.latitude, "longitude": self.longitude}
        if self.archive is not None:
            payload["archive"] = self.archive
        if self.forecast is not None:
            payload["forecast"] = self.forecast
        payload["daily_summary"] = self.daily_summary

        return payload


class WeatherAggregator:
    """Fetch and merge archive and forecast data for a partitioned span.

    Attributes:
        archive_client: OpenMeteoArchiveClient for past sub-spans
        forecast_client: OpenMeteoForecastClient for present/future sub-spans
        logger: Configured logger for operation monitoring

    Example:
        aggregator = WeatherAggregator(archive_client, forecast_client)
        partition = partition_date_range(start, end, today)
        weather = await aggregator.aggregate(52.52, 13.41, partition)
    """

    def __init__(
        self,
        archive_client: OpenMeteoArchiveClient,
        forecast_client: OpenMeteoForecastClient,
    ) -> None:
        self.archive_client = archive_client
        self.forecast_client = forecast_client

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

    async def aggregate(
        self, lat: float, lon: float, partition: DateRangePartition
    ) -> AggregatedWeather:
        """Fetch the sources a partition needs and merge their daily summaries.

        Args:
            lat (float): Latitude of the location.
            lon (float): Longitude of the location.
            partition (DateRangePartition): Sub-spans to fetch.

        Raises:
            UpstreamFetchFailure: When any required fetch fails.
            ValueError: When the partition holds no sub-span.

        Returns:
            AggregatedWeather: Raw payloads, merged daily summary and source tag.
        """
        past, present_future = partition.past, partition.present_future

        if past and present_future:
            archive, forecast = await asyncio.gather(
                self.archive_client.fetch_daily(
                    lat, lon, past[0].isoformat(), past[1].isoformat()
                ),
                self.forecast_client.fetch_daily(
                    lat,
                    lon,
                    present_future[0].isoformat(),
                    present_future[1].isoformat(),
                ),
            )
            daily_summary = summarize_daily(archive) + summarize_daily(forecast)
        elif past:
            archive = await self.archive_client.fetch_daily(
                lat, lon, past[0].isoformat(), past[1].isoformat()
            )
            forecast = None
            daily_summary = summarize_daily(archive)
        elif present_future:
            archive = None
            forecast = await self.forecast_client.fetch_daily(
                lat, lon, present_future[0].isoformat(), present_future[1].isoformat()
            )
            daily_summary = summarize_daily(forecast)
        else:
            raise ValueError("Partition does not contain any date span")

        self.logger.info(
            f"Aggregated {len(daily_summary)} days from {partition.source} for Lat.: {lat}° (N), Lon.: {lon}° (E)"
        )

        return AggregatedWeather(
            source=partition.source,
            latitude=lat,
            longitude=lon,
            archive=archive,
            forecast=forecast,
            daily_summary=daily_summary,
        )

    async def current_conditions(self, lat: float, lon: float) -> Dict[str, Any]:
        return await self.forecast_client.fetch_current(lat, lon)

    async def five_day_forecast(
        self, lat: float, lon: float, today: Optional[date] = None
    ) -> Dict[str, Any]:
        return await self.forecast_client.fetch_five_day(lat, lon, today)
