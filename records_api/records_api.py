"""
Weather Record Service API

A RESTful FastAPI application that resolves a location and a date span into a
persisted weather record, combining the OpenMeteo archive and forecast sources,
and re-exposes stored records as JSON, CSV, XML, Markdown or PDF documents.

Features:
    - Health check endpoint including database connectivity
    - Forward and reverse geocoding of location input
    - Create, read, search, update and delete of weather records
    - Export of one or all records in five formats
    - Unpersisted read-through of current conditions and a five day forecast

Endpoints:
    GET /health - Service and database health status
    GET /geocode?q= | ?lat=&lon= - Resolve a place name or name a coordinate pair
    POST /records - Create a record
    GET /records?q= - List records newest first, optionally filtered
    GET /records/export?format=&id= - Export records as a file download
    GET /records/{record_id} - Retrieve a record
    PUT /records/{record_id} - Update a record
    DELETE /records/{record_id} - Delete a record
    GET /weather/current?lat=&lon= - Current conditions
    GET /weather/forecast5?lat=&lon= - Five day forecast

Error Mapping:
    InvalidRange, LocationNotFound, UpstreamFetchFailure and
    UnsupportedExportFormat are answered with 400, RecordNotFound with 404.
    Malformed request bodies are answered with 422 by FastAPI. Anything else is
    logged and answered with a generic 500.

Lifecycle:
    The RecordDatabase handle and the upstream HTTP session are created during
    application startup and closed during shutdown. Components receive them
    through app.state instead of module globals.

Dependencies:
    - FastAPI: Web framework for building APIs
    - Pydantic: Request and response validation
    - record_store / record_models: Record orchestration and persistence
    - export_engine: Document rendering

Configuration:
    - ServiceConfig.create_from_file with CONFIG_FILE when config/ exists
    - CORS_ORIGINS: Comma-separated allowed origins
    - HOST, PORT: Listening address of main() (default 0.0.0.0:8000)
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests_cache
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from export_engine import ExportEngine, normalize_format
from geocoding_client import GeocodeResolver, NominatimClient
from openmeteo_client import OpenMeteoArchiveClient, OpenMeteoForecastClient
from record_models import Clock, RecordDatabase, WeatherRecord, utc_now
from record_store import RecordInput, RecordStore
from service_config import ServiceConfig, cors_origins, create_session
from weather_aggregator import WeatherAggregator
from weather_errors import WeatherServiceError

INTERNAL_ERROR_MESSAGE = "Internal server error"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(name="Records API")


class RecordCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_text: Optional[str] = Field(default=None, alias="inputText")
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")

    def to_input(self) -> RecordInput:
        return RecordInput(
            input_text=self.input_text,
            latitude=self.latitude,
            longitude=self.longitude,
            start_date=self.start_date,
            end_date=self.end_date,
        )


class RecordUpdateRequest(RecordCreateRequest):
    pass


class GeocodeResponse(BaseModel):
    lat: float
    lon: float
    name: str


class HealthResponse(BaseModel):
    ok: bool
    now: datetime
    database: str


class DeleteResponse(BaseModel):
    ok: bool


def _default_config() -> ServiceConfig:
    config_file = os.path.join(
        os.getcwd(), "config", os.getenv("CONFIG_FILE", "config.json")
    )

    return ServiceConfig(create_from_file=os.path.isfile(config_file), config_file=config_file)


def _service_error(e: WeatherServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


def _internal_error(action: str) -> HTTPException:
    logger.exception(f"Unexpected error while {action}: ")

    return HTTPException(status_code=500, detail=INTERNAL_ERROR_MESSAGE)


def create_app(
    config: Optional[ServiceConfig] = None,
    resolver: Optional[GeocodeResolver] = None,
    aggregator: Optional[WeatherAggregator] = None,
    database: Optional[RecordDatabase] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Build the FastAPI application.

    Collaborators that are not passed in are created from the configuration
    during startup. A database passed in stays owned by the caller and is not
    closed at shutdown.

    Args:
        config (ServiceConfig | None): Service configuration. Loaded from
            {cwd}/config when a configuration file exists, defaults otherwise.
        resolver (GeocodeResolver | None): Location resolver.
        aggregator (WeatherAggregator | None): Archive/forecast aggregator.
        database (RecordDatabase | None): Storage handle.
        clock (Clock): Source of the current UTC datetime.

    Returns:
        FastAPI: Configured application.
    """
    config = config or _default_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan definition of FastAPI app.

        - Opens the database and the upstream HTTP session on startup.
        - Closes what it opened on shutdown.

        Args:
            app (FastAPI): FastAPI instance.
        """
        session: Optional[requests_cache.CachedSession] = None
        owned_database: Optional[RecordDatabase] = None
        try:
            if resolver is None or aggregator is None:
                session = create_session(config)

            if database is None:
                owned_database = RecordDatabase(config.database_url, clock=clock)
                record_database = owned_database
            else:
                record_database = database
            record_database.create_tables()

            app.state.database = record_database
            app.state.resolver = resolver
            app.state.aggregator = aggregator
            if session is not None:
                if resolver is None:
                    app.state.resolver = GeocodeResolver(NominatimClient(config, session))
                if aggregator is None:
                    app.state.aggregator = WeatherAggregator(
                        OpenMeteoArchiveClient(config, session),
                        OpenMeteoForecastClient(config, session),
                    )
            app.state.store = RecordStore(
                record_database,
                app.state.resolver,
                app.state.aggregator,
                clock=clock,
                max_span_days=config.max_span_days,
            )
            app.state.exporter = ExportEngine(clock=clock)
            yield
        finally:
            if owned_database is not None:
                owned_database.close()
            if session is not None:
                session.close()

    app = FastAPI(
        title="Weather Record Service API",
        description="RESTful API for resolving, storing and exporting weather records",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_store(request: Request) -> RecordStore:
        return request.app.state.store

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint that verifies database connectivity

        Raises:
            HTTPException: Raised when the database connectivity test fails.

        Returns:
            HealthResponse: ok flag, current time and database state.
        """
        if request.app.state.database.connectivity_test():
            return HealthResponse(ok=True, now=clock(), database="connected")

        raise HTTPException(
            status_code=503,
            detail={"ok": False, "database": "disconnected"},
        )

    @app.get("/geocode", response_model=GeocodeResponse)
    async def geocode(
        request: Request,
        q: Optional[str] = None,
        lat: Optional[float] = Query(default=None, ge=-90, le=90),
        lon: Optional[float] = Query(default=None, ge=-180, le=180),
    ) -> GeocodeResponse:
        """Resolve a place name, or name a coordinate pair.

        Args:
            q (str | None): Place name or "lat,lon" text.
            lat (float | None): Latitude for reverse geocoding.
            lon (float | None): Longitude for reverse geocoding.

        Raises:
            HTTPException: 400 when neither q nor lat/lon is given or resolution fails.

        Returns:
            GeocodeResponse: {lat, lon, name}
        """
        resolver: GeocodeResolver = request.app.state.resolver
        try:
            if lat is not None and lon is not None:
                location = await resolver.reverse_resolve(lat, lon)
            elif q and q.strip():
                location = await resolver.resolve(input_text=q)
            else:
                raise HTTPException(status_code=400, detail="Provide q or lat/lon")

            return GeocodeResponse(**location.as_dict())

        except HTTPException:
            raise
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error("geocoding")

    @app.post("/records", response_model=WeatherRecord, status_code=201)
    async def create_record(
        body: RecordCreateRequest, store: RecordStore = Depends(get_store)
    ) -> WeatherRecord:
        """Resolve the location, fetch the weather and store a new record.

        Raises:
            HTTPException: 400 on invalid range, unknown location or upstream failure.

        Returns:
            WeatherRecord: The stored record.
        """
        try:
            return await store.create(body.to_input())
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error("creating record")

    @app.get("/records", response_model=List[WeatherRecord])
    async def list_records(
        q: Optional[str] = None, store: RecordStore = Depends(get_store)
    ) -> List[WeatherRecord]:
        """List records newest first, optionally filtered by name or input text."""
        try:
            return store.list(q)
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error("listing records")

    @app.get("/records/export")
    async def export_records(
        request: Request,
        format: str = "json",
        id: Optional[int] = None,
        store: RecordStore = Depends(get_store),
    ) -> Response:
        """Export one record or all records as a file download.

        Args:
            format (str): json, csv, xml, md/markdown or pdf/document.
            id (int | None): Export only this record.

        Raises:
            HTTPException: 400 for an unsupported format, 404 for an unknown id.

        Returns:
            Response: Document with content type and attachment filename.
        """
        exporter: ExportEngine = request.app.state.exporter
        try:
            export_format = normalize_format(format)
            records = [store.get(id)] if id is not None else store.list()
            result = exporter.export(records, export_format, record_id=id)

            return Response(
                content=result.content,
                media_type=result.content_type,
                headers={
                    "Content-Disposition": f'attachment; filename="{result.filename}"'
                },
            )

        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error("exporting records")

    @app.get("/records/{record_id}", response_model=WeatherRecord)
    async def get_record(
        record_id: int, store: RecordStore = Depends(get_store)
    ) -> WeatherRecord:
        try:
            return store.get(record_id)
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error(f"retrieving record {record_id}")

    @app.put("/records/{record_id}", response_model=WeatherRecord)
    async def update_record(
        record_id: int,
        body: RecordUpdateRequest,
        store: RecordStore = Depends(get_store),
    ) -> WeatherRecord:
        """Merge the supplied fields into a record and refresh its weather snapshot.

        Raises:
            HTTPException: 404 for an unknown id, 400 on invalid input or upstream failure.

        Returns:
            WeatherRecord: The updated record.
        """
        try:
            return await store.update(record_id, body.to_input())
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error(f"updating record {record_id}")

    @app.delete("/records/{record_id}", response_model=DeleteResponse)
    async def delete_record(
        record_id: int, store: RecordStore = Depends(get_store)
    ) -> DeleteResponse:
        try:
            store.delete(record_id)
            return DeleteResponse(ok=True)
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error(f"deleting record {record_id}")

    @app.get("/weather/current")
    async def current_weather(
        request: Request,
        lat: Optional[float] = Query(default=None, ge=-90, le=90),
        lon: Optional[float] = Query(default=None, ge=-180, le=180),
    ) -> Dict[str, Any]:
        """Current conditions from the forecast source. Nothing is stored."""
        if lat is None or lon is None:
            raise HTTPException(status_code=400, detail="lat and lon required")

        try:
            return await request.app.state.aggregator.current_conditions(lat, lon)
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error("fetching current weather")

    @app.get("/weather/forecast5")
    async def five_day_forecast(
        request: Request,
        lat: Optional[float] = Query(default=None, ge=-90, le=90),
        lon: Optional[float] = Query(default=None, ge=-180, le=180),
    ) -> Dict[str, Any]:
        """Forecast for today and the next four days. Nothing is stored."""
        if lat is None or lon is None:
            raise HTTPException(status_code=400, detail="lat and lon required")

        try:
            return await request.app.state.aggregator.five_day_forecast(
                lat, lon, clock().date()
            )
        except WeatherServiceError as e:
            raise _service_error(e)
        except Exception:
            raise _internal_error("fetching five day forecast")

    return app


app = create_app()


def main() -> None:
    """Serve the module-level app. HOST and PORT select the listening address."""
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
