"""OpenMeteo API Client Library for Weather Record Retrieval

This module provides clients for the two OpenMeteo endpoints the weather record
service combines: the historical archive and the short-range forecast. Both
return the raw JSON payload unchanged, so the payload can be persisted next to
the derived daily summary and re-exposed verbatim.

Core Components:

API Client Architecture:
- OpenMeteoClient: Abstract base class with request handling and error mapping
- OpenMeteoArchiveClient: Historical (past-dated) daily and hourly observations
- OpenMeteoForecastClient: Present/future predictions and current conditions

Request Parameters:
- Daily variables: weathercode, temperature_2m_max, temperature_2m_min, precipitation_sum
- Hourly variables: temperature_2m, relative_humidity_2m, precipitation, weathercode
- Timezone: "auto", so daily buckets follow the local calendar of the location

Error Handling:
Every transport failure, timeout, error status or undecodable body is raised as
UpstreamFetchFailure with the upstream reason when OpenMeteo supplies one. No
request is retried: each call has a fixed timeout from ServiceConfig and a
failed call fails the calling operation.

Concurrency:
The blocking requests are executed through asyncio.to_thread by the fetch_*
coroutines, which lets the aggregator await archive and forecast together.

Example:
    config = ServiceConfig()
    session = create_session(config)
    archive = OpenMeteoArchiveClient(config, session)
    payload = await archive.fetch_daily(52.52, 13.41, "2024-01-01", "2024-01-05")
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict

import requests

from service_config import HttpSession, ServiceConfig
from weather_errors import UpstreamFetchFailure

DAILY_METRICS = [
    "weathercode",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
]

HOURLY_METRICS = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation",
    "weathercode",
]

FIVE_DAY_HORIZON = 5


class OpenMeteoClient(ABC):
    """Abstract base class for OpenMeteo API clients.

    Provides the request pipeline shared by the archive and forecast clients:
    parameter construction for daily/hourly ranges, a per-call timeout, JSON
    decoding and the mapping of every failure onto UpstreamFetchFailure.

    Abstract Methods:
        url: Endpoint URL of the concrete client
        timeout: Per-call timeout in seconds of the concrete client

    Attributes:
        LABEL (str): Human-readable source name used in logs and error messages
        config: ServiceConfig instance with URLs and timeouts
        session: requests session shared with the other upstream clients
        logger: Configured logger for operation monitoring
    """

    LABEL = "OpenMeteo"

    def __init__(self, config: ServiceConfig, session: HttpSession) -> None:
        """Initialize the client with configuration and an HTTP session.

        Args:
            config (ServiceConfig): Configuration with endpoint URLs and timeouts.
            session (HttpSession): requests session used for every request.
        """
        self.config = config
        self.session = session

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    @property
    @abstractmethod
    def timeout(self) -> float:
        pass

    def range_params(
        self, lat: float, lon: float, start_date: str, end_date: str
    ) -> Dict[str, Any]:
        """Build query parameters for a daily/hourly date range request.

        Args:
            lat (float): Latitude of the location.
            lon (float): Longitude of the location.
            start_date (str): First day (YYYY-MM-DD), inclusive.
            end_date (str): Last day (YYYY-MM-DD), inclusive.

        Returns:
            Dict[str, Any]: Query parameters for the endpoint.
        """
        return {
            "latitude": lat,
            "longitude": lon,
            "timezone": "auto",
            "daily": ",".join(DAILY_METRICS),
            "hourly": ",".join(HOURLY_METRICS),
            "start_date": start_date,
            "end_date": end_date,
        }

    def get_data(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Request the endpoint and return the decoded JSON payload.

        Args:
            params (Dict[str, Any]): Query parameters.

        Raises:
            UpstreamFetchFailure: When the request fails, times out, answers
                with an error status or returns something other than a JSON object.

        Returns:
            Dict[str, Any]: Raw API payload.
        """
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"{self.LABEL} request failed: {e}")
            raise UpstreamFetchFailure(f"{self.LABEL} request failed: {e}") from e

        if response.status_code >= 400:
            reason = self.__error_reason(response)
            self.logger.error(
                f"{self.LABEL} answered with status {response.status_code}: {reason}"
            )
            raise UpstreamFetchFailure(f"{self.LABEL} request failed: {reason}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamFetchFailure(
                f"{self.LABEL} returned an undecodable response: {e}"
            ) from e

        if not isinstance(payload, dict):
            raise UpstreamFetchFailure(f"{self.LABEL} returned an unexpected payload")

        return payload

    def __error_reason(self, response: requests.Response) -> str:
        """Extract OpenMeteo's "reason" field from an error response."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("reason"):
            return str(body["reason"])

        return f"HTTP {response.status_code}"

    async def fetch_daily(
        self, lat: float, lon: float, start_date: str, end_date: str
    ) -> Dict[str, Any]:
        """Fetch daily and hourly data for an inclusive date range.

        Suspends the calling coroutine until the request completes.

        Returns:
            Dict[str, Any]: Raw API payload with "daily" and "hourly" sections.
        """
        self.logger.info(
            f"Retrieving {self.LABEL} data for Lat.: {lat}° (N), Lon.: {lon}° (E) from {start_date} to {end_date}"
        )

        params = self.range_params(lat, lon, start_date, end_date)

        return await asyncio.to_thread(self.get_data, params)


class OpenMeteoArchiveClient(OpenMeteoClient):
    """OpenMeteo Archive API client for historical weather data.

    API Characteristics:
    - Endpoint: https://archive-api.open-meteo.com/v1/archive
    - Data Delay: recent days may be incomplete until quality control finishes
    - Coverage: Global historical weather observations
    """

    LABEL = "OpenMeteo Archive"

    @property
    def url(self) -> str:
        return self.config.archive_url

    @property
    def timeout(self) -> float:
        return self.config.archive_timeout


class OpenMeteoForecastClient(OpenMeteoClient):
    """OpenMeteo Forecast API client for present and future weather.

    Besides date range requests, this client serves the two unpersisted reads:
    current conditions and a five day forecast starting today.
    """

    LABEL = "OpenMeteo Forecast"

    @property
    def url(self) -> str:
        return self.config.forecast_url

    @property
    def timeout(self) -> float:
        return self.config.forecast_timeout

    def range_params(
        self, lat: float, lon: float, start_date: str, end_date: str
    ) -> Dict[str, Any]:
        params = super().range_params(lat, lon, start_date, end_date)
        params["current_weather"] = "true"

        return params

    async def fetch_current(self, lat: float, lon: float) -> Dict[str, Any]:
        """Fetch current conditions for a location."""
        self.logger.info(
            f"Retrieving current conditions for Lat.: {lat}° (N), Lon.: {lon}° (E)"
        )

        params = {
            "latitude": lat,
            "longitude": lon,
            "current_weather": "true",
            "timezone": "auto",
        }

        return await asyncio.to_thread(self.get_data, params)

    async def fetch_five_day(
        self, lat: float, lon: float, today: date | None = None
    ) -> Dict[str, Any]:
        """Fetch the forecast for today and the following four days.

        Args:
            lat (float): Latitude of the location.
            lon (float): Longitude of the location.
            today (date | None): First forecast day. Defaults to the current UTC date.
        """
        start = today or datetime.now(timezone.utc).date()
        end = start + timedelta(days=FIVE_DAY_HORIZON - 1)

        return await self.fetch_daily(lat, lon, start.isoformat(), end.isoformat())
