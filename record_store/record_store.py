"""Weather Record Orchestration

This module ties location resolution, date partitioning, weather aggregation
and persistence together into the record operations exposed by the API.

Create/Update Flow:
    validate_date_range -> GeocodeResolver -> partition_date_range
    -> WeatherAggregator -> RecordDatabase

Validation happens first, so an invalid range is rejected before any network or
storage I/O. A failed resolution or fetch aborts the operation before anything
is written; the storage write itself is a single transaction.

Update Semantics:
- Unsupplied fields keep their stored values.
- The location is resolved again only when inputText, latitude or longitude is
  supplied. Supplied coordinates win; a single supplied coordinate is completed
  from the stored record. Otherwise the new inputText is resolved.
- The weather snapshot is always fetched again for the merged span.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple

from geocoding_client import GeocodeResolver, ResolvedLocation
from record_models import Clock, RecordDatabase, WeatherRecord, utc_now
from weather_aggregator import WeatherAggregator, partition_date_range
from weather_errors import InvalidRange

DATE_FORMAT = "%Y-%m-%d"
DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_calendar_date(value: Optional[str], field_name: str) -> date:
    """Parse a YYYY-MM-DD string into a real calendar date.

    Raises:
        InvalidRange: When the value is missing or not a valid calendar date.
    """
    if not isinstance(value, str) or not value:
        raise InvalidRange(f"{field_name} is required (YYYY-MM-DD)")

    if not DATE_PATTERN.fullmatch(value):
        raise InvalidRange(f"{field_name} must be a valid date (YYYY-MM-DD): {value}")

    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as e:
        raise InvalidRange(f"{field_name} must be a valid date (YYYY-MM-DD): {value}") from e


def validate_date_range(
    start_date: Optional[str], end_date: Optional[str], max_span_days: int = 31
) -> Tuple[date, date]:
    """Validate an inclusive date span.

    Args:
        start_date (str | None): First day, YYYY-MM-DD.
        end_date (str | None): Last day, YYYY-MM-DD.
        max_span_days (int): Largest accepted number of days, both ends included.

    Raises:
        InvalidRange: On a malformed date, an inverted span or a span that is too long.

    Returns:
        Tuple[date, date]: Parsed (start, end).
    """
    start = parse_calendar_date(start_date, "startDate")
    end = parse_calendar_date(end_date, "endDate")

    if start > end:
        raise InvalidRange("startDate must be on or before endDate")

    if (end - start).days + 1 > max_span_days:
        raise InvalidRange(f"Date range must not exceed {max_span_days} days")

    return start, end


@dataclass
class RecordInput:
    input_text: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class RecordStore:
    """Create, read, update and delete weather records.

    Attributes:
        database: RecordDatabase storage handle
        resolver: GeocodeResolver for location input
        aggregator: WeatherAggregator for archive/forecast data
        clock: Callable returning the current UTC datetime, used to split spans at today
        max_span_days: Largest accepted inclusive date span
        logger: Configured logger for operation monitoring
    """

    def __init__(
        self,
        database: RecordDatabase,
        resolver: GeocodeResolver,
        aggregator: WeatherAggregator,
        clock: Clock = utc_now,
        max_span_days: int = 31,
    ) -> None:
        self.database = database
        self.resolver = resolver
        self.aggregator = aggregator
        self.clock = clock
        self.max_span_days = max_span_days

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

    def today(self) -> date:
        return self.clock().date()

    async def create(self, data: RecordInput) -> WeatherRecord:
        """Resolve, fetch and store a new record.

        Raises:
            InvalidRange: When the date span is invalid.
            LocationNotFound: When the location cannot be resolved.
            UpstreamFetchFailure: When a geocoder or weather call fails.

        Returns:
            WeatherRecord: The stored record.
        """
        start, end = validate_date_range(data.start_date, data.end_date, self.max_span_days)

        location = await self.resolver.resolve(
            input_text=data.input_text, latitude=data.latitude, longitude=data.longitude
        )
        partition = partition_date_range(start, end, self.today())
        weather = await self.aggregator.aggregate(location.lat, location.lon, partition)

        return self.database.insert_record(
            input_text=data.input_text,
            resolved_name=location.name,
            latitude=location.lat,
            longitude=location.lon,
            start_date=start,
            end_date=end,
            source=weather.source,
            payload=weather.payload(),
        )

    def get(self, record_id: int) -> WeatherRecord:
        return self.database.get_record(record_id)

    def list(self, search_term: Optional[str] = None) -> List[WeatherRecord]:
        term = search_term.strip() if search_term else None

        return self.database.list_records(term or None)

    async def update(self, record_id: int, data: RecordInput) -> WeatherRecord:
        """Merge supplied fields over a stored record and refresh its snapshot.

        Raises:
            RecordNotFound: When the record does not exist.
            InvalidRange: When the merged date span is invalid.
            LocationNotFound: When a new location cannot be resolved.
            UpstreamFetchFailure: When a geocoder or weather call fails.

        Returns:
            WeatherRecord: The updated record.
        """
        existing = self.database.get_record(record_id)

        start, end = validate_date_range(
            data.start_date if data.start_date is not None else existing.start_date,
            data.end_date if data.end_date is not None else existing.end_date,
            self.max_span_days,
        )

        input_text = data.input_text if data.input_text is not None else existing.input_text
        location = await self.__resolve_update_location(existing, data)

        partition = partition_date_range(start, end, self.today())
        weather = await self.aggregator.aggregate(location.lat, location.lon, partition)

        return self.database.replace_record(
            record_id,
            input_text=input_text,
            resolved_name=location.name,
            latitude=location.lat,
            longitude=location.lon,
            start_date=start,
            end_date=end,
            source=weather.source,
            payload=weather.payload(),
        )

    async def __resolve_update_location(
        self, existing: WeatherRecord, data: RecordInput
    ) -> ResolvedLocation:
        if data.latitude is not None or data.longitude is not None:
            latitude = data.latitude if data.latitude is not None else existing.latitude
            longitude = data.longitude if data.longitude is not None else existing.longitude
            return await self.resolver.resolve(latitude=latitude, longitude=longitude)

        if data.input_text is not None:
            return await self.resolver.resolve(input_text=data.input_text)

        return ResolvedLocation(
            lat=existing.latitude, lon=existing.longitude, name=existing.resolved_name
        )

    def delete(self, record_id: int) -> None:
        self.database.delete_record(record_id)
