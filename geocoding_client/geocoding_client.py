"""Location Resolution for Weather Queries

This module turns heterogeneous location input into a canonical
(latitude, longitude, name) triple. It wraps the Nominatim place search and
reverse geocoding services and applies a fixed precedence between explicit
coordinates, coordinate text and free-form place names.

Core Components:
- ResolvedLocation: Canonical location triple
- NominatimClient: HTTP access to the place search and reverse geocoding services
- GeocodeResolver: Precedence rules on top of NominatimClient
- parse_coordinate_text: Recognizes "lat,lon" style input

Resolution Precedence:
1. Numeric latitude and longitude are returned verbatim, the name is the
   coordinate pair with 4 decimal places.
2. Text made of exactly two numeric tokens (separated by whitespace and/or a
   comma), each within geographic bounds, is treated as coordinates.
3. Anything else is sent to the place search; the first match wins.

Network calls run in a worker thread so the event loop keeps serving other
requests while a lookup is in flight.
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from service_config import HttpSession, ServiceConfig
from weather_errors import LocationNotFound, UpstreamFetchFailure

COORDINATE_SEPARATOR = re.compile(r"[ ,]+")


@dataclass(frozen=True)
class ResolvedLocation:
    lat: float
    lon: float
    name: str

    def as_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lon": self.lon, "name": self.name}


def format_coordinates(lat: float, lon: float) -> str:
    """Render a coordinate pair as "lat, lon" with 4 decimal places."""
    return f"{lat:.4f}, {lon:.4f}"


def is_valid_coordinate(lat: float, lon: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lon <= 180


def parse_coordinate_text(text: Optional[str]) -> Optional[Tuple[float, float]]:
    """Parse free-form text holding exactly two numbers as coordinates.

    Accepts "37.7749,-122.4194", "37.7749 -122.4194" and "37.7749 , -122.4194".

    Args:
        text (str | None): Raw user input.

    Returns:
        Tuple[float, float] | None: (latitude, longitude) when the text is two
            finite numbers within geographic bounds, otherwise None.
    """
    if not isinstance(text, str):
        return None

    parts = [part for part in COORDINATE_SEPARATOR.split(text.strip()) if part]
    if len(parts) != 2:
        return None

    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None

    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None

    return (lat, lon) if is_valid_coordinate(lat, lon) else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class NominatimClient:
    """Client for the Nominatim place search and reverse geocoding endpoints.

    Attributes:
        config: ServiceConfig with endpoint URLs and the geocoder timeout
        session: requests session (normally a requests_cache.CachedSession)
        logger: Configured logger for request monitoring
    """

    def __init__(self, config: ServiceConfig, session: HttpSession) -> None:
        self.config = config
        self.session = session

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

    def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """Issue a GET request and decode its JSON body.

        Raises:
            UpstreamFetchFailure: When the request fails, times out, returns an
                error status or an undecodable body.
        """
        try:
            response = self.session.get(
                url, params=params, timeout=self.config.geocode_timeout
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Geocoding request to {url} failed: {e}")
            raise UpstreamFetchFailure(f"Geocoding failed: {e}") from e

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Look up a free-form place name.

        Args:
            query (str): Place name as typed by the user.

        Returns:
            List[Dict[str, Any]]: Matches ordered by confidence (at most one).
        """
        self.logger.info(f"Searching place name {query!r}")

        params = {"q": query, "format": "json", "addressdetails": 1, "limit": 1}
        data = self._get_json(self.config.geocode_url, params)

        return data if isinstance(data, list) else []

    def reverse(self, lat: float, lon: float) -> Optional[Dict[str, Any]]:
        """Look up the place at a coordinate pair."""
        self.logger.info(f"Reverse geocoding Lat.: {lat}° (N), Lon.: {lon}° (E)")

        params = {"lat": lat, "lon": lon, "format": "json", "zoom": 10}
        data = self._get_json(self.config.reverse_geocode_url, params)

        return data if isinstance(data, dict) else None


class GeocodeResolver:
    """Resolve location input to a ResolvedLocation.

    Example:
        resolver = GeocodeResolver(NominatimClient(config, session))
        location = await resolver.resolve(input_text="Berlin")
    """

    def __init__(self, client: NominatimClient) -> None:
        self.client = client

    async def resolve(
        self,
        input_text: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> ResolvedLocation:
        """Resolve explicit coordinates, coordinate text or a place name.

        Args:
            input_text (str | None): Raw user input.
            latitude (float | None): Explicit latitude.
            longitude (float | None): Explicit longitude.

        Raises:
            LocationNotFound: When no input is usable or the search has no match.
            UpstreamFetchFailure: When the place search fails.

        Returns:
            ResolvedLocation: Canonical location triple.
        """
        if (
            latitude is not None
            and longitude is not None
            and _is_number(latitude)
            and _is_number(longitude)
        ):
            return ResolvedLocation(
                lat=latitude, lon=longitude, name=format_coordinates(latitude, longitude)
            )

        parsed = parse_coordinate_text(input_text)
        if parsed:
            lat, lon = parsed
            return ResolvedLocation(lat=lat, lon=lon, name=format_coordinates(lat, lon))

        if not input_text or not input_text.strip():
            raise LocationNotFound("Provide inputText or latitude/longitude")

        matches = await asyncio.to_thread(self.client.search, input_text.strip())
        if not matches:
            raise LocationNotFound(f"Location not found: {input_text}")

        first = matches[0]
        try:
            lat, lon = float(first["lat"]), float(first["lon"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamFetchFailure(f"Geocoding returned a malformed match: {e}") from e

        return ResolvedLocation(
            lat=lat, lon=lon, name=first.get("display_name") or format_coordinates(lat, lon)
        )

    async def reverse_resolve(self, lat: float, lon: float) -> ResolvedLocation:
        """Name a coordinate pair, falling back to the formatted coordinates."""
        place = await asyncio.to_thread(self.client.reverse, lat, lon)
        name = place.get("display_name") if place else None

        return ResolvedLocation(lat=lat, lon=lon, name=name or format_coordinates(lat, lon))
