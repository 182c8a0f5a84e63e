"""Mutable detection state.

JobState and SchedulerState are the only things that survive from one poll
to the next. They are dataclasses rather than Pydantic models because they
are internal engine objects, mutated in place under the engine lock and
never validated from external input. Callers outside the engine only ever
see copies.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime

from schemas.alert import HealthState, HeuristicKind


@dataclass
class JobState:
    """Per-job detection state, keyed by job_id in the state store.

    Attributes:
        job_id: The job this state tracks.
        group: Threshold group the job resolved to when first seen.
        consecutive_stuck: Debounce counter. In shared mode it counts
            consecutive polls with any finding. In literal mode every
            finding advances it. In per-heuristic mode it mirrors the
            largest per-heuristic counter.
        last_status: Heuristic of the first finding in the latest poll, or
            None after a poll with no findings.
        error_streak: Last error count that met the threshold, else 0.
        missed_streak: Last missed count that met the threshold, else 0.
        last_checked: Time of the last poll that saw this job.
        last_alert_time: Time of the last surfaced alert, any heuristic.
        health_state: Current binary classification.
        stuck_since: When the job entered the alerting state.
        counters: Consecutive-poll counter per heuristic.
        last_triggered: Last time each heuristic reached the debounce depth.
            Reported in diagnostics only.
    """

    job_id: str
    group: str = "default"
    consecutive_stuck: int = 0
    last_status: HeuristicKind | None = None
    error_streak: int = 0
    missed_streak: int = 0
    last_checked: datetime | None = None
    last_alert_time: datetime | None = None
    health_state: HealthState = HealthState.NOT_ALERTING
    stuck_since: datetime | None = None
    counters: dict[HeuristicKind, int] = field(default_factory=dict)
    last_triggered: dict[HeuristicKind, datetime] = field(default_factory=dict)

    def copy(self) -> "JobState":
        """Return an independent copy, including the counter dicts."""
        return replace(
            self,
            counters=dict(self.counters),
            last_triggered=dict(self.last_triggered),
        )


@dataclass
class SchedulerState:
    """Process-wide scheduler liveness state."""

    consecutive_inactive: int = 0
    last_alert_time: datetime | None = None
    last_checked: datetime | None = None

    def copy(self) -> "SchedulerState":
        return replace(self)
