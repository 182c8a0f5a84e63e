"""Fixture record source.

Serves job records from a JSON file so the full monitor runs without a live
scheduling database. This is what the service falls back to when no
database URL is configured.

Fixture timestamps are relative so the data never goes stale. Each record
gives its times as minutes before "now" at fetch time:

    {
        "records": [
            {
                "job_id": "indexer_reindex_all_invalid",
                "status": "running",
                "created_minutes_ago": 50,
                "scheduled_minutes_ago": 48,
                "executed_minutes_ago": 47
            }
        ]
    }

Negative values point into the future (upcoming pending jobs). Absolute
ISO-8601 values under the plain field names ("created_at", ...) are also
accepted and win over the relative form.
"""

import json
import logging
import pathlib
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from schemas.record import JobRecord, JobStatus
from sources.base import RecordSource, SourceError

logger = logging.getLogger(__name__)

_TIME_FIELDS = ("created_at", "scheduled_at", "executed_at", "finished_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FixtureRecordSource(RecordSource):
    """Read job records from a JSON fixture on every fetch.

    The file is re-read on every call, so editing it while the monitor runs
    changes what the next poll sees.

    Attributes:
        path: Location of the fixture file.
        _clock: Returns "now" for resolving relative timestamps.
    """

    def __init__(self, path: str | pathlib.Path, clock: Callable[[], datetime] = _utcnow) -> None:
        self.path = pathlib.Path(path)
        self._clock = clock

    @property
    def description(self) -> str:
        return f"fixture {self.path}"

    def fetch_recent(self, lookback: timedelta) -> list[JobRecord]:
        now = self._clock()
        cutoff = now - lookback
        records = [r for r in self._load(now) if r.created_at >= cutoff]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def count_recently_created(self, minutes: int) -> int:
        now = self._clock()
        cutoff = now - timedelta(minutes=minutes)
        return sum(1 for r in self._load(now) if r.created_at >= cutoff)

    def count_upcoming_pending(self, minutes: int) -> int:
        now = self._clock()
        until = now + timedelta(minutes=minutes)
        return sum(
            1
            for r in self._load(now)
            if r.status is JobStatus.PENDING and now <= r.scheduled_at <= until
        )

    def total_count(self) -> int:
        return len(self._load(self._clock()))

    # ── Private ───────────────────────────────────────────────────────────────

    def _load(self, now: datetime) -> list[JobRecord]:
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise SourceError(f"Cannot read fixture {self.path}: {exc}") from exc

        rows = raw.get("records", []) if isinstance(raw, dict) else raw
        if not isinstance(rows, list):
            raise SourceError(f"Fixture {self.path} has no record list")

        records: list[JobRecord] = []
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                logger.warning("Skipping malformed fixture record #%d: not an object", index)
                continue
            try:
                records.append(JobRecord(**_resolve_times(row, now)))
            except (ValidationError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed fixture record #%d: %s", index, exc)
        return records


def _resolve_times(row: dict, now: datetime) -> dict:
    """Turn "<name>_minutes_ago" keys into absolute "<name>_at" timestamps."""
    resolved = {k: v for k, v in row.items() if not k.endswith("_minutes_ago")}
    for field in _TIME_FIELDS:
        relative_key = field.replace("_at", "_minutes_ago")
        if field not in resolved and row.get(relative_key) is not None:
            resolved[field] = now - timedelta(minutes=float(row[relative_key]))
    return resolved
