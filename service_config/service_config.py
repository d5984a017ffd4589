"""Weather Service Configuration

This module provides the configuration object shared by every component of the
weather record service: upstream endpoint URLs, per-call network timeouts, the
HTTP response cache, request validation limits and the database connection URL.

Configuration Sources:
- Built-in defaults matching the public Open-Meteo and Nominatim endpoints
- JSON configuration files (create_from_file=True)
- Direct parameter passing via kwargs, overriding file values
- Environment variables for database credentials and file locations

Configuration File Schema:
    {
        "archive_url": str,
        "forecast_url": str,
        "geocode_url": str,
        "reverse_geocode_url": str,
        "archive_timeout": float,
        "forecast_timeout": float,
        "geocode_timeout": float,
        "max_span_days": int,
        "user_agent": str,
        "cache_name": str,
        "cache_backend": "sqlite" | "memory" | "filesystem",
        "cache_expire_after": int,
        "database_url": str
    }

Environment Variables:
- CONFIG_FILE: Configuration file name inside {cwd}/config (default config.json)
- POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_HOST, POSTGRES_PORT, POSTGRES_DB:
  PostgreSQL connection, used when POSTGRES_HOST is set
- WEATHER_DB_PATH: SQLite database file used otherwise (default ./data/weather.db)
- CORS_ORIGINS: Comma-separated list of allowed origins (default "*")
"""

import json
import os
from dataclasses import InitVar, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import requests_cache

ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
GEOCODE_URL = "https://nominatim.openstreetmap.org/search"
REVERSE_GEOCODE_URL = "https://nominatim.openstreetmap.org/reverse"

CACHE_BACKENDS = ("sqlite", "memory", "filesystem")

URL_KEYS = ("archive_url", "forecast_url", "geocode_url", "reverse_geocode_url")
TIMEOUT_KEYS = ("archive_timeout", "forecast_timeout", "geocode_timeout")


def default_database_url() -> str:
    """Build the database URL from the environment.

    Returns:
        str: PostgreSQL (psycopg2) URL when POSTGRES_HOST is set, otherwise a
            SQLite URL pointing at WEATHER_DB_PATH.
    """
    if os.getenv("POSTGRES_HOST"):
        return (
            f"postgresql+psycopg2://{os.getenv('POSTGRES_USER')}:{os.getenv('POSTGRES_PASSWORD')}"
            f"@{os.getenv('POSTGRES_HOST')}:{os.getenv('POSTGRES_PORT', '5432')}/{os.getenv('POSTGRES_DB')}"
        )

    return f"sqlite:///{os.getenv('WEATHER_DB_PATH', os.path.join('.', 'data', 'weather.db'))}"


def cors_origins() -> List[str]:
    """Allowed CORS origins read from CORS_ORIGINS."""
    origins = os.getenv("CORS_ORIGINS")

    return [o.strip() for o in origins.split(",") if o.strip()] if origins else ["*"]


@dataclass
class ServiceConfig:
    """Configuration for the weather record service.

    Every attribute has a usable default, so ServiceConfig() alone yields a
    working configuration against the public upstream services and a local
    SQLite database. Values loaded from a file are validated the same way as
    kwargs, and kwargs always win over file values.

    Attributes:
        archive_url (str): Historical weather archive endpoint.
        forecast_url (str): Short-range forecast endpoint.
        geocode_url (str): Place name search endpoint.
        reverse_geocode_url (str): Reverse geocoding endpoint.
        archive_timeout (float): Seconds before an archive call is abandoned.
        forecast_timeout (float): Seconds before a forecast call is abandoned.
        geocode_timeout (float): Seconds before a geocoder call is abandoned.
        max_span_days (int): Largest accepted inclusive date span.
        user_agent (str): User-Agent sent with every upstream request.
        cache_name (str): requests_cache cache name (file path for sqlite).
        cache_backend (str): requests_cache backend name.
        cache_expire_after (int): Seconds a cached upstream response stays valid.
        database_url (str): SQLAlchemy database URL.

    Example:
        From kwargs:\n
        config = ServiceConfig(kwargs={"forecast_timeout": 5, "cache_backend": "memory"})

        From configuration file with overrides:\n
        config = ServiceConfig(create_from_file=True, kwargs={"max_span_days": 14})
    """

    archive_url: str = ARCHIVE_URL
    forecast_url: str = FORECAST_URL
    geocode_url: str = GEOCODE_URL
    reverse_geocode_url: str = REVERSE_GEOCODE_URL
    archive_timeout: float = 20.0
    forecast_timeout: float = 15.0
    geocode_timeout: float = 12.0
    max_span_days: int = 31
    user_agent: str = "WeatherRecordService/1.0 (contact: example@example.com)"
    cache_name: str = "/tmp/.weather_cache"
    cache_backend: str = "sqlite"
    cache_expire_after: int = 3600
    database_url: str = field(default_factory=default_database_url)
    create_from_file: InitVar[bool] = field(default=False)
    config_file: InitVar[Optional[str]] = field(default=None)
    kwargs: InitVar[Optional[Dict[str, Any]]] = field(default=None)

    def __post_init__(
        self,
        create_from_file: bool,
        config_file: Optional[str],
        kwargs: Optional[Dict[str, Any]],
    ) -> None:
        """Apply file and kwargs values on top of the defaults.

        Args:
            create_from_file (bool): Whether to load values from a JSON file.
            config_file (str | None): Path to the JSON file. Defaults to
                {cwd}/config/{CONFIG_FILE env var or config.json}.
            kwargs (Dict[str, Any] | None): Values overriding defaults and file.

        Raises:
            ValueError: When a key is unknown or a value fails validation.
        """
        if create_from_file:
            if not config_file:
                config_file = os.path.join(
                    os.getcwd(),
                    "config",
                    os.getenv("CONFIG_FILE", "config.json"),
                )

            self.__apply(self.__get_config(config_file))

        if kwargs:
            self.__apply(kwargs)

    def __get_config(self, config_file: str) -> Dict[str, Any]:
        """Load and parse a JSON configuration file."""
        with open(file=config_file, mode="r") as file:
            config = json.load(fp=file)

        return config

    def __apply(self, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            if key in URL_KEYS:
                self.__set_url(key, value)
            elif key in TIMEOUT_KEYS:
                self.__set_timeout(key, value)
            elif key in ("max_span_days", "cache_expire_after"):
                self.__set_positive_int(key, value)
            elif key == "cache_backend":
                self.__set_cache_backend(value)
            elif key in ("user_agent", "cache_name", "database_url"):
                self.__set_string(key, value)
            else:
                raise ValueError(f"Unknown configuration parameter: {key}")

    def __set_url(self, key: str, url: Any) -> None:
        if isinstance(url, str) and url.startswith(("http://", "https://")):
            setattr(self, key, url)
        else:
            raise ValueError(
                f"Parameter {key} must be an http(s) URL. Got {url!r} instead."
            )

    def __set_timeout(self, key: str, timeout: Any) -> None:
        """Validate and set a per-call timeout.

        Raises:
            ValueError: When the timeout is not a positive number.
        """
        if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
            if timeout > 0:
                setattr(self, key, float(timeout))
            else:
                raise ValueError(f"Parameter {key} must be >0. Got {timeout}")
        else:
            raise ValueError(
                f"Parameter {key} expected {float} Received {type(timeout)} instead."
            )

    def __set_positive_int(self, key: str, value: Any) -> None:
        if isinstance(value, int) and not isinstance(value, bool):
            if value > 0:
                setattr(self, key, value)
            else:
                raise ValueError(f"Parameter {key} must be >0. Got {value}")
        else:
            raise ValueError(
                f"Parameter {key} expected {int} Received {type(value)} instead."
            )

    def __set_cache_backend(self, backend: Any) -> None:
        if backend in CACHE_BACKENDS:
            self.cache_backend = backend
        else:
            raise ValueError(
                f"Parameter cache_backend must be one of {CACHE_BACKENDS}. Got {backend!r}"
            )

    def __set_string(self, key: str, value: Any) -> None:
        if isinstance(value, str) and value:
            setattr(self, key, value)
        else:
            raise ValueError(
                f"Parameter {key} expected a non-empty {str} Received {value!r} instead."
            )


class HttpSession(Protocol):
    """The part of a requests session the upstream clients use."""

    def get(
        self, url: str, *, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> Any: ...


def create_session(config: ServiceConfig) -> requests_cache.CachedSession:
    """Build the cached HTTP session used for all upstream calls.

    No retry adapter is mounted: a failed or timed-out call fails the calling
    operation immediately.

    Args:
        config (ServiceConfig): Supplies cache name, backend, expiry and User-Agent.

    Returns:
        requests_cache.CachedSession: Session with the User-Agent header set.
    """
    session = requests_cache.CachedSession(
        config.cache_name,
        backend=config.cache_backend,
        expire_after=config.cache_expire_after,
    )
    session.headers["User-Agent"] = config.user_agent

    return session
