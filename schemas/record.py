"""Job execution record schema.

A JobRecord is one row of the scheduling table as seen by a single poll.
Records are produced fresh by a record source on every poll, read by the
detection heuristics, and discarded once the poll completes. Nothing in the
detection layer ever mutates or stores them.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class JobStatus(str, Enum):
    """Execution status of a scheduled job.

    Extends str so values serialize to plain strings ("running", "error")
    in logs, webhook payloads, and the diagnostics API.
    """

    RUNNING = "running"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    MISSED = "missed"


class JobRecord(BaseModel):
    """A single execution record for one job.

    Attributes:
        job_id: Identifier of the job this execution belongs to
            (e.g. "indexer_reindex_all_invalid").
        status: Execution status at the time of the poll.
        created_at: When the scheduler created the row.
        scheduled_at: When the execution was due to start.
        executed_at: When execution actually started. None until the job
            has been picked up by a runner.
        finished_at: When execution finished. None while running or pending.
        message: Free-text diagnostic detail, typically the last error.
        schedule_id: Row identifier in the source table, when known.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    created_at: datetime
    scheduled_at: datetime
    executed_at: datetime | None = None
    finished_at: datetime | None = None
    message: str | None = None
    schedule_id: int | None = None

    @field_validator("created_at", "scheduled_at", "executed_at", "finished_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Scheduling tables store naive UTC timestamps.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
