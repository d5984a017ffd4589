"""Shared fixtures for the weather record service tests.

Upstream HTTP is replaced by FakeSession, which answers OpenMeteo requests with
payloads generated from the request parameters. Nominatim is replaced by a
MagicMock. Storage is an in-memory SQLite database.
"""

import threading
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
import requests

from geocoding_client import GeocodeResolver, NominatimClient
from openmeteo_client import OpenMeteoArchiveClient, OpenMeteoForecastClient
from record_models import RecordDatabase
from record_store import RecordStore
from service_config import ServiceConfig
from weather_aggregator import WeatherAggregator

NOW = datetime(2024, 1, 3, 12, 0, 0, tzinfo=timezone.utc)

BERLIN = {"lat": "52.5200", "lon": "13.4050", "display_name": "Berlin, Germany"}


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def daily_payload(
    start_date: str, end_date: str, lat: float = 52.52, lon: float = 13.405, code: int = 3
) -> Dict[str, Any]:
    start = date.fromisoformat(start_date)
    days = (date.fromisoformat(end_date) - start).days + 1
    dates = [(start + timedelta(days=i)).isoformat() for i in range(days)]

    return {
        "latitude": lat,
        "longitude": lon,
        "timezone": "Europe/Berlin",
        "daily": {
            "time": dates,
            "temperature_2m_min": [1.0] * days,
            "temperature_2m_max": [5.5] * days,
            "precipitation_sum": [0.0] * days,
            "weathercode": [code] * days,
        },
    }


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        return self.payload


class FakeSession:
    """Stands in for the cached requests session of the OpenMeteo clients.

    Records every call and the start/end order of calls, optionally sleeping to
    make overlapping calls observable.
    """

    def __init__(self, fail_urls: Tuple[str, ...] = (), delay: float = 0.0) -> None:
        self.fail_urls = set(fail_urls)
        self.delay = delay
        self.calls: List[Tuple[str, Dict[str, Any], Optional[float]]] = []
        self.events: List[Tuple[str, str]] = []
        self.lock = threading.Lock()

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None):
        params = dict(params or {})
        with self.lock:
            self.calls.append((url, params, timeout))
            self.events.append(("start", url))

        if self.delay:
            time.sleep(self.delay)

        with self.lock:
            self.events.append(("end", url))

        if url in self.fail_urls:
            raise requests.ConnectionError(f"{url} unreachable")

        if "start_date" in params:
            return FakeResponse(
                daily_payload(
                    params["start_date"], params["end_date"], params["latitude"], params["longitude"]
                )
            )

        return FakeResponse(
            {
                "latitude": params.get("latitude"),
                "longitude": params.get("longitude"),
                "current_weather": {"temperature": 3.2, "weathercode": 3},
            }
        )

    def urls(self) -> List[str]:
        return [url for url, _, _ in self.calls]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def config() -> ServiceConfig:
    return ServiceConfig(kwargs={"database_url": "sqlite://", "cache_backend": "memory"})


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def nominatim() -> MagicMock:
    client = MagicMock(spec=NominatimClient)
    client.search.return_value = [BERLIN]
    client.reverse.return_value = {"display_name": "Berlin, Germany"}
    return client


@pytest.fixture
def resolver(nominatim) -> GeocodeResolver:
    return GeocodeResolver(nominatim)


@pytest.fixture
def aggregator(config, session) -> WeatherAggregator:
    return WeatherAggregator(
        OpenMeteoArchiveClient(config, session),
        OpenMeteoForecastClient(config, session),
    )


@pytest.fixture
def database(clock):
    database = RecordDatabase("sqlite://", clock=clock)
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def store(database, resolver, aggregator, clock) -> RecordStore:
    return RecordStore(database, resolver, aggregator, clock=clock)
