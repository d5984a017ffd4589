"""Tests for the HTTP surface of the weather record service."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from geocoding_client import GeocodeResolver
from record_models import RecordDatabase
from records_api import create_app
from records_api import records_api as records_api_module
from service_config import ARCHIVE_URL, FORECAST_URL
from weather_aggregator import WeatherAggregator
from weather_errors import UpstreamFetchFailure

BERLIN_BODY = {"inputText": "Berlin", "startDate": "2023-12-01", "endDate": "2023-12-05"}


@pytest.fixture
def client(config, resolver, aggregator, database, clock):
    app = create_app(
        config=config,
        resolver=resolver,
        aggregator=aggregator,
        database=database,
        clock=clock,
    )
    with TestClient(app) as client:
        yield client


def _timestamp(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _create(client, **overrides):
    body = dict(BERLIN_BODY, **overrides)
    response = client.post("/records", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    """Test cases for the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert response.json()["now"].startswith("2024-01-03T12:00:00")
        assert response.json()["database"] == "connected"

    def test_database_unreachable(self, config, resolver, aggregator, clock):
        database = MagicMock(spec=RecordDatabase)
        database.connectivity_test.return_value = False
        app = create_app(
            config=config, resolver=resolver, aggregator=aggregator, database=database, clock=clock
        )

        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 503
        database.create_tables.assert_called_once()
        database.close.assert_not_called()

    def test_builds_upstream_clients_when_not_injected(self, config, database, clock):
        app = create_app(config=config, database=database, clock=clock)

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert isinstance(app.state.resolver, GeocodeResolver)
            assert isinstance(app.state.aggregator, WeatherAggregator)
            assert app.state.store.database is database


class TestGeocode:
    """Test cases for the geocoding endpoint."""

    def test_place_name(self, client):
        response = client.get("/geocode", params={"q": "Berlin"})

        assert response.status_code == 200
        assert response.json() == {"lat": 52.52, "lon": 13.405, "name": "Berlin, Germany"}

    def test_coordinate_text(self, client, nominatim):
        response = client.get("/geocode", params={"q": "37.7749,-122.4194"})

        assert response.json()["name"] == "37.7749, -122.4194"
        nominatim.search.assert_not_called()

    def test_reverse(self, client, nominatim):
        response = client.get("/geocode", params={"lat": 52.52, "lon": 13.405})

        assert response.status_code == 200
        assert response.json()["name"] == "Berlin, Germany"
        nominatim.reverse.assert_called_once_with(52.52, 13.405)

    def test_missing_parameters(self, client):
        assert client.get("/geocode").status_code == 400
        assert client.get("/geocode", params={"lat": 1}).status_code == 400

    def test_not_found(self, client, nominatim):
        nominatim.search.return_value = []

        response = client.get("/geocode", params={"q": "Atlantis"})

        assert response.status_code == 400
        assert "Atlantis" in response.json()["detail"]

    def test_upstream_failure(self, client, nominatim):
        nominatim.search.side_effect = UpstreamFetchFailure("Geocoding failed: timed out")

        response = client.get("/geocode", params={"q": "Berlin"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Geocoding failed: timed out"

    def test_unexpected_error(self, client, nominatim):
        """Internal failures do not leak their message."""
        nominatim.search.side_effect = RuntimeError("secret internals")

        response = client.get("/geocode", params={"q": "Berlin"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"


class TestRecords:
    """Test cases for record create, read, update and delete."""

    def test_create(self, client):
        record = _create(client)

        assert record["id"] > 0
        assert record["input_text"] == "Berlin"
        assert record["resolved_name"] == "Berlin, Germany"
        assert record["start_date"] == "2023-12-01"
        assert record["source"] == "archive"
        assert len(record["weather"]["daily_summary"]) == 5

    def test_create_with_coordinates(self, client, nominatim):
        record = _create(client, inputText=None, latitude=48.8566, longitude=2.3522)

        assert record["resolved_name"] == "48.8566, 2.3522"
        assert record["input_text"] is None
        nominatim.search.assert_not_called()

    def test_create_invalid_range(self, client, session):
        response = client.post(
            "/records", json=dict(BERLIN_BODY, startDate="2024-01-10", endDate="2024-01-05")
        )

        assert response.status_code == 400
        assert "startDate" in response.json()["detail"]
        assert session.calls == []

    def test_create_span_too_long(self, client):
        response = client.post(
            "/records", json=dict(BERLIN_BODY, startDate="2023-11-01", endDate="2023-12-02")
        )

        assert response.status_code == 400

    def test_create_without_location(self, client):
        response = client.post(
            "/records", json={"startDate": "2023-12-01", "endDate": "2023-12-02"}
        )

        assert response.status_code == 400

    def test_create_out_of_bounds_coordinates(self, client):
        response = client.post("/records", json=dict(BERLIN_BODY, latitude=100, longitude=0))

        assert response.status_code == 422

    def test_create_upstream_failure(self, client, session):
        session.fail_urls.add(ARCHIVE_URL)

        response = client.post("/records", json=BERLIN_BODY)

        assert response.status_code == 400
        assert "unreachable" in response.json()["detail"]
        assert client.get("/records").json() == []

    def test_get_round_trip(self, client):
        created = _create(client)

        response = client.get(f"/records/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_get_unknown(self, client):
        response = client.get("/records/999")

        assert response.status_code == 404
        assert response.json()["detail"] == "Record 999 not found"

    def test_list_and_search(self, client):
        berlin = _create(client)
        coords = _create(client, inputText="37.7749,-122.4194")

        assert [r["id"] for r in client.get("/records").json()] == [coords["id"], berlin["id"]]
        assert [r["id"] for r in client.get("/records", params={"q": "BERLIN"}).json()] == [
            berlin["id"]
        ]

    def test_update_end_date_only(self, client):
        created = _create(client)

        response = client.put(f"/records/{created['id']}", json={"endDate": "2023-12-07"})

        assert response.status_code == 200
        updated = response.json()
        assert updated["input_text"] == created["input_text"]
        assert updated["latitude"] == created["latitude"]
        assert updated["longitude"] == created["longitude"]
        assert updated["end_date"] == "2023-12-07"
        assert len(updated["weather"]["daily_summary"]) == 7
        assert _timestamp(updated["updated_at"]) > _timestamp(created["updated_at"])

    def test_update_unknown(self, client):
        assert client.put("/records/999", json={"endDate": "2023-12-07"}).status_code == 404

    def test_update_invalid_range(self, client):
        created = _create(client)

        response = client.put(f"/records/{created['id']}", json={"startDate": "2023-12-09"})

        assert response.status_code == 400

    def test_delete(self, client):
        created = _create(client)

        response = client.delete(f"/records/{created['id']}")

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert client.get(f"/records/{created['id']}").status_code == 404
        assert client.delete(f"/records/{created['id']}").status_code == 404
        assert (
            client.get("/records/export", params={"format": "json", "id": created["id"]}).status_code
            == 404
        )


class TestExport:
    """Test cases for the export endpoint."""

    def test_csv_download(self, client):
        _create(client)

        response = client.get("/records/export", params={"format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/csv; charset=utf-8"
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="weather-records-1-2024-01-03T12-00-00')
        assert disposition.endswith('.csv"')
        assert response.text.splitlines()[0].startswith('"ID","Location Name"')

    def test_single_record_json(self, client):
        created = _create(client)

        response = client.get("/records/export", params={"id": created["id"]})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert f"weather-record-{created['id']}-" in response.headers["content-disposition"]
        assert response.json() == [created]

    def test_empty_export(self, client):
        for export_format in ("json", "csv", "xml", "md", "pdf"):
            response = client.get("/records/export", params={"format": export_format})
            assert response.status_code == 200
            assert "weather-records-0-" in response.headers["content-disposition"]

    def test_pdf(self, client):
        _create(client)

        response = client.get("/records/export", params={"format": "document"})

        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_unsupported_format(self, client):
        response = client.get("/records/export", params={"format": "yaml"})

        assert response.status_code == 400
        assert "yaml" in response.json()["detail"]

    def test_format_checked_before_id(self, client):
        response = client.get("/records/export", params={"format": "yaml", "id": 999})

        assert response.status_code == 400


class TestWeather:
    """Test cases for the unpersisted weather reads."""

    def test_current(self, client, session):
        response = client.get("/weather/current", params={"lat": 52.52, "lon": 13.405})

        assert response.status_code == 200
        assert response.json()["current_weather"]["weathercode"] == 3
        assert session.urls() == [FORECAST_URL]
        assert client.get("/records").json() == []

    def test_forecast5(self, client, session):
        response = client.get("/weather/forecast5", params={"lat": 52.52, "lon": 13.405})

        assert response.status_code == 200
        assert response.json()["daily"]["time"] == [
            "2024-01-03",
            "2024-01-04",
            "2024-01-05",
            "2024-01-06",
            "2024-01-07",
        ]

    def test_missing_coordinates(self, client):
        assert client.get("/weather/current", params={"lat": 52.52}).status_code == 400
        assert client.get("/weather/forecast5").status_code == 400

    def test_upstream_failure(self, client, session):
        session.fail_urls.add(FORECAST_URL)

        response = client.get("/weather/current", params={"lat": 1, "lon": 1})

        assert response.status_code == 400


class TestMain:
    """Test cases for the server entry point."""

    def test_serves_app_with_uvicorn(self, monkeypatch):
        monkeypatch.setenv("HOST", "127.0.0.1")
        monkeypatch.setenv("PORT", "9000")

        with patch.object(records_api_module.uvicorn, "run") as run:
            records_api_module.main()

        run.assert_called_once_with(records_api_module.app, host="127.0.0.1", port=9000)

    def test_default_address(self, monkeypatch):
        monkeypatch.delenv("HOST", raising=False)
        monkeypatch.delenv("PORT", raising=False)

        with patch.object(records_api_module.uvicorn, "run") as run:
            records_api_module.main()

        assert run.call_args.kwargs == {"host": "0.0.0.0", "port": 8000}
