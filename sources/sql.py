"""SQL record source.

Reads the scheduler's `cron_schedule` table through SQLAlchemy. Any database
SQLAlchemy can reach works: MySQL/MariaDB in production (install the `mysql`
extra for the PyMySQL driver), SQLite for local runs and tests.

Table columns used:
    schedule_id, job_code, status, messages,
    created_at, scheduled_at, executed_at, finished_at

Timestamps in the table are naive UTC. All time arithmetic happens in Python
and is bound as parameters, so the queries carry no dialect-specific date
functions.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import DateTime, Engine, Integer, String, Text, bindparam, create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from schemas.record import JobRecord
from sources.base import RecordSource, SourceError

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "cron_schedule"

_COLUMNS = dict(
    schedule_id=Integer,
    job_code=String,
    status=String,
    messages=Text,
    created_at=DateTime,
    scheduled_at=DateTime,
    executed_at=DateTime,
    finished_at=DateTime,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive_utc(value: datetime) -> datetime:
    """Convert to the naive UTC form the table stores."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SqlRecordSource(RecordSource):
    """Query job records from a `cron_schedule`-shaped table.

    Attributes:
        _engine: SQLAlchemy engine. Connections are pooled and pre-pinged.
        _table: Table name. Trusted configuration, never user input.
        _clock: Returns "now" for window calculations.
    """

    def __init__(
        self,
        engine: Engine,
        table: str = DEFAULT_TABLE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        self._engine = engine
        self._table = table
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, table: str = DEFAULT_TABLE) -> "SqlRecordSource":
        """Build a source with a pooled engine for the given database URL."""
        engine = create_engine(url, pool_pre_ping=True, pool_recycle=300)
        return cls(engine, table=table)

    @property
    def description(self) -> str:
        return f"{self._engine.url.render_as_string(hide_password=True)} ({self._table})"

    def fetch_recent(self, lookback: timedelta) -> list[JobRecord]:
        query = (
            text(
                f"SELECT schedule_id, job_code, status, messages, created_at, "
                f"scheduled_at, executed_at, finished_at "
                f"FROM {self._table} "
                f"WHERE created_at >= :cutoff "
                f"ORDER BY created_at DESC, schedule_id DESC"
            )
            .bindparams(bindparam("cutoff", type_=DateTime()))
            .columns(**_COLUMNS)
        )
        cutoff = _naive_utc(self._clock() - lookback)

        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query, {"cutoff": cutoff}).mappings().all()
        except SQLAlchemyError as exc:
            raise SourceError(f"Failed to query {self._table}: {exc}") from exc

        records: list[JobRecord] = []
        for row in rows:
            try:
                records.append(JobRecord(
                    job_id=row["job_code"],
                    status=row["status"],
                    message=row["messages"],
                    created_at=row["created_at"],
                    scheduled_at=row["scheduled_at"],
                    executed_at=row["executed_at"],
                    finished_at=row["finished_at"],
                    schedule_id=row["schedule_id"],
                ))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed %s row %s: %s",
                    self._table,
                    row["schedule_id"],
                    exc.errors()[0]["msg"],
                )

        logger.debug("Fetched %d records from %s.", len(records), self._table)
        return records

    def count_recently_created(self, minutes: int) -> int:
        query = text(
            f"SELECT COUNT(*) FROM {self._table} WHERE created_at >= :cutoff"
        ).bindparams(bindparam("cutoff", type_=DateTime()))
        cutoff = _naive_utc(self._clock() - timedelta(minutes=minutes))
        return self._scalar(query, {"cutoff": cutoff}, "recently created jobs")

    def count_upcoming_pending(self, minutes: int) -> int:
        query = text(
            f"SELECT COUNT(*) FROM {self._table} "
            f"WHERE status = 'pending' AND scheduled_at BETWEEN :start AND :until"
        ).bindparams(
            bindparam("start", type_=DateTime()),
            bindparam("until", type_=DateTime()),
        )
        now = self._clock()
        params = {
            "start": _naive_utc(now),
            "until": _naive_utc(now + timedelta(minutes=minutes)),
        }
        return self._scalar(query, params, "upcoming pending jobs")

    def total_count(self) -> int:
        return self._scalar(text(f"SELECT COUNT(*) FROM {self._table}"), {}, "row count")

    def close(self) -> None:
        self._engine.dispose()

    # ── Private ───────────────────────────────────────────────────────────────

    def _scalar(self, query, params: dict, what: str) -> int:
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(query, params).scalar_one())
        except SQLAlchemyError as exc:
            raise SourceError(f"Failed to query {what}: {exc}") from exc
