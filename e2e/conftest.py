"""Shared test helpers: a controllable clock, record factories, env isolation."""

import logging
import os
from datetime import datetime, timedelta, timezone

import pytest

from config import ENV_PREFIX, get_settings
from notify.base import NotificationError, Notifier
from schemas.record import JobRecord, JobStatus
from sources.base import RecordSource, SourceError

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0, hours: float = 0) -> datetime:
        self.now += timedelta(minutes=minutes, seconds=seconds, hours=hours)
        return self.now


def make_record(
    job_id="job_a",
    status=JobStatus.SUCCESS,
    now=T0,
    created=5,
    scheduled=None,
    executed=None,
    finished=None,
    message=None,
    schedule_id=None,
) -> JobRecord:
    """Build a record with times given as minutes before `now`."""
    scheduled = created if scheduled is None else scheduled
    return JobRecord(
        job_id=job_id,
        status=status,
        created_at=now - timedelta(minutes=created),
        scheduled_at=now - timedelta(minutes=scheduled),
        executed_at=now - timedelta(minutes=executed) if executed is not None else None,
        finished_at=now - timedelta(minutes=finished) if finished is not None else None,
        message=message,
        schedule_id=schedule_id,
    )


def running(job_id="job_a", now=T0, executed=35):
    return make_record(job_id, JobStatus.RUNNING, now, created=executed + 1, executed=executed)


def pending(job_id="job_a", now=T0, count=1):
    return [make_record(job_id, JobStatus.PENDING, now, created=i + 1) for i in range(count)]


def errors(job_id="job_a", now=T0, count=1, message="boom"):
    return [
        make_record(job_id, JobStatus.ERROR, now, created=i + 1, executed=i + 1, message=message)
        for i in range(count)
    ]


def missed(job_id="job_a", now=T0, count=1):
    return [make_record(job_id, JobStatus.MISSED, now, created=i + 1) for i in range(count)]


def healthy(job_id="job_a", now=T0):
    return make_record(job_id, JobStatus.SUCCESS, now, created=2, executed=2, finished=1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Drop any CRONWATCH_ variables (including ones loaded from a local .env)."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    monkeypatch.setenv(f"{ENV_PREFIX}LOG_FILE", str(tmp_path / "cronwatch.log"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()

    # configure_logging() (CLI / API tests) installs root handlers bound to
    # streams that do not outlive the test.
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_cronwatch", False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.WARNING)


class RecordingNotifier(Notifier):
    """Keeps every transition it is sent; optionally fails instead."""

    name = "recording"

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.closed = False

    def send(self, transition):
        if self.fail:
            raise NotificationError("down")
        self.sent.append(transition)

    def close(self):
        self.closed = True


class FailingSource(RecordSource):
    """A record source whose database is down."""

    def fetch_recent(self, lookback):
        raise SourceError("connection refused")

    def count_recently_created(self, minutes):
        raise SourceError("connection refused")

    def count_upcoming_pending(self, minutes):
        raise SourceError("connection refused")

    def total_count(self):
        raise SourceError("connection refused")


# One long-running indexer and one healthy job, in fixture-file form.
STUCK = [
    {"job_id": "indexer_x", "status": "running", "created_minutes_ago": 50,
     "scheduled_minutes_ago": 48, "executed_minutes_ago": 47},
    {"job_id": "backend_ok", "status": "success", "created_minutes_ago": 2,
     "scheduled_minutes_ago": 2, "executed_minutes_ago": 2, "finished_minutes_ago": 1},
]
