"""Tests for the schema bootstrap routine."""

import importlib
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from bootstrap_service import bootstrap
from record_models import RecordDatabase
from service_config import ServiceConfig

# The package re-exports the function under the module's name
bootstrap_module = importlib.import_module("bootstrap_service.bootstrap")


def _config(url):
    return ServiceConfig(kwargs={"database_url": url, "cache_backend": "memory"})


def _insert(database, name):
    return database.insert_record(
        input_text=name,
        resolved_name=name,
        latitude=52.52,
        longitude=13.405,
        start_date=date(2023, 12, 1),
        end_date=date(2023, 12, 2),
        source="archive",
        payload={"daily_summary": []},
    )


class TestBootstrap:
    """Test cases for the deployment bootstrap."""

    def test_fresh_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'weather.db'}"

        assert bootstrap(_config(url)) == 0

        database = RecordDatabase(url)
        try:
            assert database.list_records() == []
        finally:
            database.close()

    def test_existing_records_are_kept(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'weather.db'}"
        database = RecordDatabase(url)
        database.create_tables()
        _insert(database, "Berlin")
        _insert(database, "Paris")
        database.close()

        assert bootstrap(_config(url)) == 2
        assert bootstrap(_config(url)) == 2

    def test_does_not_load_records_to_count(self):
        database = MagicMock(spec=RecordDatabase)
        database.connectivity_test.return_value = True
        database.count_records.return_value = 5

        with patch.object(bootstrap_module, "RecordDatabase", return_value=database):
            assert bootstrap(_config("sqlite://")) == 5

        database.create_tables.assert_called_once()
        database.list_records.assert_not_called()
        database.close.assert_called_once()

    def test_unreachable_database(self):
        database = MagicMock(spec=RecordDatabase)
        database.connectivity_test.return_value = False

        with patch.object(bootstrap_module, "RecordDatabase", return_value=database):
            with pytest.raises(RuntimeError):
                bootstrap(_config("sqlite://"))

        database.create_tables.assert_not_called()
        database.close.assert_called_once()
