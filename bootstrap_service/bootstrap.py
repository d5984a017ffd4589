"""Weather Record Service Bootstrap Module

This module prepares the record database before the API is deployed for the
first time. It creates the queries and weather_snapshots tables when they do
not exist and reports how many records are already stored. Existing records are
never touched, so the script is safe to run on every deployment.

The database URL is taken from ServiceConfig: a PostgreSQL URL when
POSTGRES_HOST is set, otherwise the SQLite file at WEATHER_DB_PATH. A
configuration file in {cwd}/config (CONFIG_FILE, default config.json) is
applied when present.

Usage:
    This module is designed to run as a standalone script during system
    deployment, before the API process starts.

Example:
    python -m bootstrap_service.bootstrap
"""

import logging
import os
import sys

from record_models import RecordDatabase
from service_config import ServiceConfig


def bootstrap(config: ServiceConfig) -> int:
    """Create the schema and return the number of stored records.

    Args:
        config (ServiceConfig): Supplies the database URL.

    Raises:
        RuntimeError: When the database cannot be reached.

    Returns:
        int: Records already present after the schema was created.
    """
    logger = logging.getLogger(name="Bootstrap Service")
    database = RecordDatabase(config.database_url)

    try:
        if not database.connectivity_test():
            raise RuntimeError("Database is not reachable")

        logger.info("Starting bootstrap routine...")
        database.create_tables()

        count = database.count_records()
        logger.info(f"Bootstrap routine completed successfully! {count} records stored.")

        return count
    finally:
        database.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(name="Bootstrap Service")

    config_file = os.path.join(
        os.getcwd(), "config", os.getenv("CONFIG_FILE", "config.json")
    )

    try:
        bootstrap(
            ServiceConfig(
                create_from_file=os.path.isfile(config_file), config_file=config_file
            )
        )
    except Exception:
        logger.exception("An error occurred during the bootstrap routine: ")
        sys.exit(1)
