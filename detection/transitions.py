"""Transition tracker. Derives health flips from a poll's evaluation.

The tracker never runs a heuristic. It receives the triggers the engine
already computed for a job this poll and compares the resulting
classification with the job's stored health_state:

    not_alerting ──(any trigger)──▶ alerting       emit, stuck_since = now
    alerting ──(no triggers)──▶ not_alerting       emit, stuck_duration
    otherwise                                      nothing

A job seen for the first time starts not_alerting, so a job that is already
unhealthy on first sight produces an ordinary not_alerting → alerting flip
once its triggers appear, and nothing before that. There is no terminal
state; eviction of the job's state is the only way out.
"""

import logging
from datetime import datetime, timedelta

from detection.heuristics import Trigger
from schemas.alert import HealthState, StateTransition
from schemas.record import JobRecord, JobStatus
from schemas.state import JobState

logger = logging.getLogger(__name__)


class TransitionTracker:
    """Compare current classification against stored health state."""

    def track(
        self,
        state: JobState,
        records: list[JobRecord],
        triggers: list[Trigger],
        now: datetime,
    ) -> StateTransition | None:
        """Update state.health_state and return the transition, if any.

        Args:
            state: The job's live state. health_state and stuck_since are
                updated in place when a flip happens.
            records: The job's records for this poll, most recent first.
                Used only for evidence (last execution, scheduled time,
                running duration).
            triggers: Debounced triggers for this poll in fixed heuristic
                order. Non-empty means the job is currently alerting.
            now: Poll time.

        Returns:
            A StateTransition when the classification flipped, else None.
        """
        alerting = bool(triggers)

        if alerting and state.health_state is HealthState.NOT_ALERTING:
            return self._enter_alerting(state, records, triggers[0], now)

        if not alerting and state.health_state is HealthState.ALERTING:
            return self._recover(state, records, now)

        return None

    # ── Private ───────────────────────────────────────────────────────────────

    def _enter_alerting(
        self, state: JobState, records: list[JobRecord], trigger: Trigger, now: datetime
    ) -> StateTransition:
        finding = trigger.finding
        state.health_state = HealthState.ALERTING
        state.stuck_since = now

        logger.info("Job '%s' is now alerting: %s", state.job_id, finding.reason)

        return StateTransition(
            job_id=state.job_id,
            group=state.group,
            from_state=HealthState.NOT_ALERTING,
            to_state=HealthState.ALERTING,
            at=now,
            status=finding.status,
            reason=finding.reason,
            kind=finding.kind,
            last_execution=_last_execution(records),
            scheduled_at=_latest_scheduled(records),
            running_time=_running_time(records, now),
            pending_count=finding.pending_count,
            error_count=finding.error_count,
            missed_count=finding.missed_count,
            consecutive_stuck=trigger.consecutive_stuck,
        )

    def _recover(self, state: JobState, records: list[JobRecord], now: datetime) -> StateTransition:
        stuck_since = state.stuck_since or now
        stuck_duration = now - stuck_since

        state.health_state = HealthState.NOT_ALERTING
        state.stuck_since = None

        logger.info("Job '%s' is no longer alerting after %s.", state.job_id, stuck_duration)

        return StateTransition(
            job_id=state.job_id,
            group=state.group,
            from_state=HealthState.ALERTING,
            to_state=HealthState.NOT_ALERTING,
            at=now,
            status=records[0].status if records else None,
            stuck_duration=stuck_duration,
            last_execution=_last_execution(records),
            scheduled_at=_latest_scheduled(records),
            consecutive_stuck=0,
        )


# ── Batch evidence ────────────────────────────────────────────────────────────

def _last_execution(records: list[JobRecord]) -> datetime | None:
    return max((r.executed_at for r in records if r.executed_at is not None), default=None)


def _latest_scheduled(records: list[JobRecord]) -> datetime | None:
    return max((r.scheduled_at for r in records), default=None)


def _running_time(records: list[JobRecord], now: datetime) -> timedelta | None:
    for record in records:
        if record.status is JobStatus.RUNNING and record.executed_at is not None:
            return now - record.executed_at
    return None
