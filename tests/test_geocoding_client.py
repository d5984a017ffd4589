"""Tests for location resolution precedence and the Nominatim client."""

import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from geocoding_client import (
    GeocodeResolver,
    NominatimClient,
    ResolvedLocation,
    format_coordinates,
    parse_coordinate_text,
)
from service_config import GEOCODE_URL, REVERSE_GEOCODE_URL
from weather_errors import LocationNotFound, UpstreamFetchFailure


class TestParseCoordinateText:
    """Test cases for recognizing coordinate text."""

    @pytest.mark.parametrize(
        "text",
        ["37.7749,-122.4194", "37.7749 -122.4194", "37.7749 , -122.4194", "  37.7749,  -122.4194 "],
    )
    def test_accepted_forms(self, text):
        assert parse_coordinate_text(text) == (37.7749, -122.4194)

    @pytest.mark.parametrize(
        "text",
        [None, "", "Berlin", "52.5", "1 2 3", "91,0", "0,181", "nan,1", "inf 2", "52.5,north"],
    )
    def test_rejected_forms(self, text):
        assert parse_coordinate_text(text) is None

    def test_format_coordinates(self):
        assert format_coordinates(37.7749, -122.4194) == "37.7749, -122.4194"
        assert format_coordinates(1, 2) == "1.0000, 2.0000"


class TestGeocodeResolver:
    """Test cases for the resolution precedence rules."""

    def test_explicit_coordinates_win(self, resolver, nominatim):
        """Numeric coordinates are returned verbatim, even next to input text."""
        location = asyncio.run(
            resolver.resolve(input_text="Berlin", latitude=48.1372, longitude=11.5756)
        )

        assert location == ResolvedLocation(48.1372, 11.5756, "48.1372, 11.5756")
        nominatim.search.assert_not_called()

    def test_coordinate_text_skips_geocoder(self, resolver, nominatim):
        location = asyncio.run(resolver.resolve(input_text="37.7749,-122.4194"))

        assert location.lat == 37.7749
        assert location.lon == -122.4194
        assert location.name == "37.7749, -122.4194"
        nominatim.search.assert_not_called()

    def test_place_name_uses_first_match(self, resolver, nominatim):
        nominatim.search.return_value = [
            {"lat": "52.52", "lon": "13.405", "display_name": "Berlin, Germany"},
            {"lat": "41.0", "lon": "-73.0", "display_name": "Berlin, USA"},
        ]

        location = asyncio.run(resolver.resolve(input_text="  Berlin "))

        assert location.as_dict() == {"lat": 52.52, "lon": 13.405, "name": "Berlin, Germany"}
        nominatim.search.assert_called_once_with("Berlin")

    def test_single_coordinate_falls_through_to_text(self, resolver, nominatim):
        asyncio.run(resolver.resolve(input_text="Berlin", latitude=52.5))

        nominatim.search.assert_called_once_with("Berlin")

    def test_no_match(self, resolver, nominatim):
        nominatim.search.return_value = []

        with pytest.raises(LocationNotFound):
            asyncio.run(resolver.resolve(input_text="Atlantis"))

    def test_no_input(self, resolver, nominatim):
        for text in (None, "", "   "):
            with pytest.raises(LocationNotFound):
                asyncio.run(resolver.resolve(input_text=text))

        nominatim.search.assert_not_called()

    def test_malformed_match(self, resolver, nominatim):
        nominatim.search.return_value = [{"display_name": "Nowhere"}]

        with pytest.raises(UpstreamFetchFailure):
            asyncio.run(resolver.resolve(input_text="Nowhere"))

    def test_reverse_resolve(self, resolver, nominatim):
        location = asyncio.run(resolver.reverse_resolve(52.52, 13.405))

        assert location.name == "Berlin, Germany"
        nominatim.reverse.assert_called_once_with(52.52, 13.405)

    def test_reverse_resolve_without_name(self, resolver, nominatim):
        nominatim.reverse.return_value = None

        location = asyncio.run(resolver.reverse_resolve(0.5, -0.25))

        assert location.name == "0.5000, -0.2500"


class TestNominatimClient:
    """Test cases for the HTTP calls to Nominatim."""

    def _response(self, payload):
        response = MagicMock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        return response

    def test_search_parameters(self, config):
        session = MagicMock()
        session.get.return_value = self._response([{"lat": "1", "lon": "2"}])

        matches = NominatimClient(config, session).search("Berlin")

        assert matches == [{"lat": "1", "lon": "2"}]
        session.get.assert_called_once_with(
            GEOCODE_URL,
            params={"q": "Berlin", "format": "json", "addressdetails": 1, "limit": 1},
            timeout=12.0,
        )

    def test_reverse_parameters(self, config):
        session = MagicMock()
        session.get.return_value = self._response({"display_name": "Berlin"})

        place = NominatimClient(config, session).reverse(52.52, 13.405)

        assert place == {"display_name": "Berlin"}
        session.get.assert_called_once_with(
            REVERSE_GEOCODE_URL,
            params={"lat": 52.52, "lon": 13.405, "format": "json", "zoom": 10},
            timeout=12.0,
        )

    def test_unexpected_body_shapes(self, config):
        session = MagicMock()
        session.get.return_value = self._response({"error": "Unable to geocode"})
        client = NominatimClient(config, session)

        assert client.search("x") == []

        session.get.return_value = self._response([])
        assert client.reverse(0, 0) is None

    def test_transport_failure(self, config):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(UpstreamFetchFailure, match="connection refused"):
            NominatimClient(config, session).search("Berlin")

    def test_error_status(self, config):
        session = MagicMock()
        response = self._response(None)
        response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
        session.get.return_value = response

        with pytest.raises(UpstreamFetchFailure):
            NominatimClient(config, session).reverse(1, 1)
