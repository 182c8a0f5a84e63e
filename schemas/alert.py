"""Detection output schemas.

Alerts and state transitions are the only things the detection engine hands
to the outside world. Both are immutable once constructed. The log sink
renders alerts, the notification dispatcher renders transitions, and the
diagnostics API serializes both inside a PollResult.
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from schemas.record import JobStatus


class HeuristicKind(str, Enum):
    """The detection rule that produced a finding.

    Declaration order of the four per-job kinds is the fixed evaluation
    order used for alert suppression and transition reasons.
    """

    LONG_RUNNING = "long_running"
    PENDING_ACCUMULATION = "pending_accumulation"
    CONSECUTIVE_ERRORS = "consecutive_errors"
    MISSED_EXECUTIONS = "missed_executions"
    SCHEDULER_INACTIVE = "scheduler_inactive"


JOB_HEURISTICS: tuple[HeuristicKind, ...] = (
    HeuristicKind.LONG_RUNNING,
    HeuristicKind.PENDING_ACCUMULATION,
    HeuristicKind.CONSECUTIVE_ERRORS,
    HeuristicKind.MISSED_EXECUTIONS,
)


class HealthState(str, Enum):
    """Binary health classification of a job."""

    NOT_ALERTING = "not_alerting"
    ALERTING = "alerting"


class Alert(BaseModel):
    """A debounced, non-suppressed stuck condition for one job.

    Only the evidence field belonging to the triggering heuristic is set:
    running_time for long-running jobs, pending_count for accumulation,
    error_count for consecutive errors, missed_count for missed executions.
    Scheduler alerts carry none of them.

    Attributes:
        job_id: The job, or "SCHEDULER" for the scheduler liveness check.
        group: Threshold group the job resolved to.
        kind: Heuristic that fired.
        status: Status observed on the triggering record. None for the
            scheduler alert.
        reason: Human-readable description of the condition.
        consecutive_stuck: Debounce counter value when the alert fired.
        detected_at: Poll time at which the alert was raised.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    group: str = "default"
    kind: HeuristicKind
    status: JobStatus | None = None
    reason: str
    running_time: timedelta | None = None
    pending_count: int | None = None
    error_count: int | None = None
    missed_count: int | None = None
    consecutive_stuck: int = 0
    scheduled_at: datetime | None = None
    executed_at: datetime | None = None
    message: str | None = None
    detected_at: datetime


class StateTransition(BaseModel):
    """A flip of a job's health classification.

    reason and the evidence fields are populated when the job enters the
    alerting state. stuck_duration is populated when it leaves it.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    group: str = "default"
    from_state: HealthState
    to_state: HealthState
    at: datetime
    status: JobStatus | None = None
    reason: str | None = None
    kind: HeuristicKind | None = None
    stuck_duration: timedelta | None = None
    last_execution: datetime | None = None
    scheduled_at: datetime | None = None
    running_time: timedelta | None = None
    pending_count: int | None = None
    error_count: int | None = None
    missed_count: int | None = None
    consecutive_stuck: int = 0

    @property
    def is_recovery(self) -> bool:
        return self.to_state is HealthState.NOT_ALERTING


class PollResult(BaseModel):
    """Everything one poll produced.

    Attributes:
        polled_at: Engine clock at the start of the poll.
        record_count: Number of records in the batch.
        job_count: Number of distinct jobs in the batch.
        alerts: Alerts surfaced this poll, in evaluation order.
        transitions: Health flips detected this poll.
        evicted: Job identifiers whose state was garbage-collected.
    """

    model_config = ConfigDict(frozen=True)

    polled_at: datetime
    record_count: int = 0
    job_count: int = 0
    alerts: list[Alert] = Field(default_factory=list)
    transitions: list[StateTransition] = Field(default_factory=list)
    evicted: list[str] = Field(default_factory=list)
