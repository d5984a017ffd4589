"""Weather Record Data Models and Database Management

This module defines the persistence layer of the weather record service: the
SQLAlchemy ORM models for saved queries and their weather snapshots, the
database engine configuration, and the RecordDatabase storage handle that every
other component receives explicitly.

Core Components:

Database Models:
- WeatherQuery: One saved search (resolved location, date span, source tag)
- WeatherSnapshot: Versioned weather payload belonging to a WeatherQuery

Database Management:
- DatabaseEngine: Engine construction for PostgreSQL or SQLite URLs
- RecordDatabase: Storage handle with explicit open/close lifecycle

View Models:
- WeatherRecord: Query plus its current snapshot, as returned by the API

Snapshot Versioning:
Snapshots form an append-only log per query. WeatherQuery.current_version names
the authoritative snapshot. Replacing a snapshot inserts version N+1, moves the
pointer and retires the older versions inside a single transaction, so an
observer always sees exactly one current snapshot.

Session Management:
    database = RecordDatabase("sqlite:///./data/weather.db")
    try:
        database.create_tables()
        # Perform operations
    finally:
        database.close()
"""

import logging
import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, relationship, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from weather_errors import RecordNotFound

Base = declarative_base()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without timezone support."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class WeatherQuery(Base):
    __tablename__ = "queries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    input_text = Column(Text, nullable=True)
    resolved_name = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    source = Column(String(32), nullable=False)
    current_version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)

    snapshots = relationship(
        "WeatherSnapshot",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="WeatherSnapshot.version",
    )

    __table_args__ = (
        CheckConstraint(
            "source IN ('forecast', 'archive', 'archive+forecast')",
            name="queries-check_source",
        ),
        CheckConstraint("latitude BETWEEN -90 AND 90", name="queries-check_latitude"),
        CheckConstraint(
            "longitude BETWEEN -180 AND 180", name="queries-check_longitude"
        ),
        CheckConstraint("start_date <= end_date", name="queries-check_date_range"),
    )

    @property
    def current_snapshot(self) -> Optional["WeatherSnapshot"]:
        for snapshot in self.snapshots:
            if snapshot.version == self.current_version:
                return snapshot
        return None


class WeatherSnapshot(Base):
    __tablename__ = "weather_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    query_id = Column(
        Integer, ForeignKey("queries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    query = relationship("WeatherQuery", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("query_id", "version", name="weather_snapshots-unique_version"),
    )


class WeatherRecord(BaseModel):
    """A saved query together with its current weather snapshot."""

    id: int
    input_text: Optional[str] = None
    resolved_name: str
    latitude: float
    longitude: float
    start_date: str
    end_date: str
    source: str
    created_at: datetime
    updated_at: datetime
    weather: Optional[Dict[str, Any]] = None

    @property
    def daily_summary(self) -> List[Dict[str, Any]]:
        if self.weather and isinstance(self.weather.get("daily_summary"), list):
            return self.weather["daily_summary"]
        return []

    @classmethod
    def from_orm_query(cls, query: WeatherQuery) -> "WeatherRecord":
        snapshot = query.current_snapshot

        return cls(
            id=query.id,
            input_text=query.input_text,
            resolved_name=query.resolved_name,
            latitude=query.latitude,
            longitude=query.longitude,
            start_date=query.start_date.isoformat(),
            end_date=query.end_date.isoformat(),
            source=query.source,
            created_at=as_utc(query.created_at),
            updated_at=as_utc(query.updated_at),
            weather=snapshot.payload if snapshot else None,
        )


class DatabaseEngine:
    """Database engine configuration.

    Builds a SQLAlchemy engine from a URL. SQLite URLs get a shared connection
    pool usable across threads; in-memory SQLite uses a single static connection
    so every session sees the same database. The parent directory of a SQLite
    database file is created when missing.
    """

    def __init__(self, url: str) -> None:
        parsed = make_url(url)

        if parsed.get_backend_name() == "sqlite":
            database = parsed.database
            if database and database != ":memory:":
                directory = os.path.dirname(os.path.abspath(database))
                os.makedirs(directory, exist_ok=True)
                self.__engine = create_engine(
                    url, echo=False, connect_args={"check_same_thread": False}
                )
            else:
                self.__engine = create_engine(
                    url,
                    echo=False,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
        else:
            self.__engine = create_engine(url, echo=False, pool_pre_ping=True)

    @property
    def get_engine(self) -> Engine:
        return self.__engine


class RecordDatabase:
    """Weather Record Database Management Class

    Owns the engine and session factory for the queries and weather_snapshots
    tables. The handle is opened once at service startup and closed during
    shutdown; it is passed to the components that need storage instead of being
    reachable as a global.

    Every write runs in its own transaction. On failure the transaction is
    rolled back, the error is logged and re-raised.

    Attributes:
        logger: Configured logger instance for database operations
        clock: Callable returning the current UTC datetime
    """

    def __init__(self, url: str, clock: Clock = utc_now) -> None:
        """Initialize RecordDatabase instance.

        Args:
            url (str): SQLAlchemy database URL.
            clock (Clock): Source of timestamps. Defaults to the UTC wall clock.
        """
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

        self.clock = clock
        self.__engine = DatabaseEngine(url).get_engine
        self.__session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)

        self.logger.info(f"Opened database {make_url(url).render_as_string(hide_password=True)}")

    @property
    def engine(self) -> Engine:
        return self.__engine

    def create_tables(self) -> None:
        """Create the queries and weather_snapshots tables if they do not exist."""
        Base.metadata.create_all(self.__engine)

    def connectivity_test(self) -> bool:
        """Check that the database answers a trivial statement."""
        try:
            with self.__engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.logger.error(f"Database connectivity test failed: {e}")
            return False

    def close(self) -> None:
        """Release all pooled connections."""
        self.logger.info("Closing Database Engine...")
        self.__engine.dispose()

    def __session(self) -> Session:
        return self.__session_factory()

    def __load_query(self, session: Session, record_id: int) -> WeatherQuery:
        query = session.scalar(
            select(WeatherQuery)
            .options(selectinload(WeatherQuery.snapshots))
            .where(WeatherQuery.id == record_id)
        )
        if query is None:
            raise RecordNotFound(record_id)

        return query

    def insert_record(
        self,
        input_text: Optional[str],
        resolved_name: str,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        source: str,
        payload: Dict[str, Any],
    ) -> WeatherRecord:
        """Insert a query and its first snapshot in one transaction.

        Returns:
            WeatherRecord: The stored record with its assigned id.
        """
        now = self.clock()

        with self.__session() as session:
            query = WeatherQuery(
                input_text=input_text or None,
                resolved_name=resolved_name,
                latitude=latitude,
                longitude=longitude,
                start_date=start_date,
                end_date=end_date,
                source=source,
                current_version=1,
                created_at=now,
                updated_at=now,
            )
            query.snapshots.append(WeatherSnapshot(version=1, payload=payload, created_at=now))
            session.add(query)

            try:
                session.commit()
            except Exception as e:
                self.logger.error(f"Error during writing record: {e}")
                self.logger.info("Rolling back transaction...")
                session.rollback()
                raise

            self.logger.info(f"Stored record {query.id} ({resolved_name}, {start_date} to {end_date})")

            return WeatherRecord.from_orm_query(query)

    def get_record(self, record_id: int) -> WeatherRecord:
        """Retrieve one record with its current snapshot.

        Raises:
            RecordNotFound: When no query has the given id.
        """
        with self.__session() as session:
            return WeatherRecord.from_orm_query(self.__load_query(session, record_id))

    def list_records(self, search_term: Optional[str] = None) -> List[WeatherRecord]:
        """Retrieve all records newest first, optionally filtered.

        Args:
            search_term (str | None): Case-insensitive substring matched against
                the resolved name or the raw input text.

        Returns:
            List[WeatherRecord]: Matching records ordered by descending id.
        """
        statement = select(WeatherQuery).options(selectinload(WeatherQuery.snapshots))

        if search_term:
            escaped = (
                search_term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            )
            pattern = f"%{escaped}%"
            statement = statement.where(
                or_(
                    WeatherQuery.resolved_name.ilike(pattern, escape="\\"),
                    func.coalesce(WeatherQuery.input_text, "").ilike(pattern, escape="\\"),
                )
            )

        statement = statement.order_by(WeatherQuery.id.desc())

        with self.__session() as session:
            queries: Sequence[WeatherQuery] = session.scalars(statement).all()

            return [WeatherRecord.from_orm_query(query) for query in queries]

    def count_records(self) -> int:
        """Number of stored records, counted in the database."""
        with self.__session() as session:
            return session.scalar(select(func.count(WeatherQuery.id))) or 0

    def replace_record(
        self,
        record_id: int,
        input_text: Optional[str],
        resolved_name: str,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        source: str,
        payload: Dict[str, Any],
    ) -> WeatherRecord:
        """Overwrite a query's fields and replace its snapshot atomically.

        Inserts the next snapshot version, moves current_version to it and
        retires every older snapshot in the same transaction. updated_at is
        strictly greater than its previous value.

        Raises:
            RecordNotFound: When no query has the given id.

        Returns:
            WeatherRecord: The updated record.
        """
        now = self.clock()

        with self.__session() as session:
            query = self.__load_query(session, record_id)

            previous = as_utc(query.updated_at)
            updated_at = now if now > previous else previous + timedelta(microseconds=1)
            next_version = max(s.version for s in query.snapshots) + 1 if query.snapshots else 1

            query.input_text = input_text or None
            query.resolved_name = resolved_name
            query.latitude = latitude
            query.longitude = longitude
            query.start_date = start_date
            query.end_date = end_date
            query.source = source
            query.updated_at = updated_at

            for retired in list(query.snapshots):
                query.snapshots.remove(retired)
            session.flush()

            query.snapshots.append(
                WeatherSnapshot(version=next_version, payload=payload, created_at=now)
            )
            query.current_version = next_version

            try:
                session.commit()
            except Exception as e:
                self.logger.error(f"Error during replacing record {record_id}: {e}")
                self.logger.info("Rolling back transaction...")
                session.rollback()
                raise

            self.logger.info(f"Replaced record {record_id} with snapshot version {next_version}")

            return WeatherRecord.from_orm_query(query)

    def delete_record(self, record_id: int) -> None:
        """Delete a query together with all of its snapshots.

        Raises:
            RecordNotFound: When no query has the given id.
        """
        with self.__session() as session:
            query = self.__load_query(session, record_id)
            session.delete(query)

            try:
                session.commit()
            except Exception as e:
                self.logger.error(f"Error during deleting record {record_id}: {e}")
                self.logger.info("Rolling back transaction...")
                session.rollback()
                raise

            self.logger.info(f"Deleted record {record_id}")

