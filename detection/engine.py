"""Detection engine. Stateful stuck-job detection across polls.

DetectionEngine is the single owner of all detection state. Callers hand it
one poll's batch of records at a time; it returns the alerts and health
transitions that batch produced.

Pipeline order inside evaluate(), all under one lock:
    1. Group records by job, preserving source order (most recent first)
    2. Per job: resolve thresholds, get or create state, stamp last_checked
    3. Run the four heuristics once, producing pure findings
    4. Debounce findings into triggers (see DebounceMode)
    5. Surface triggers as alerts, subject to the per-job suppression window
    6. Hand the same triggers to the TransitionTracker for health flips
    7. Evict job states idle for longer than the state TTL

Each heuristic runs exactly once per job per poll. Alerts and transitions
are two views of the same evaluation, so classifying health never advances
a counter a second time.

The scheduler liveness check runs separately via check_scheduler(), because
it queries the record source and should not hold the lock while doing so.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from enum import Enum

from core.state_store import JobStateStore
from detection.heuristics import Finding, JobHeuristics, Trigger
from detection.scheduler import SchedulerProbe, observe_scheduler
from detection.thresholds import ThresholdResolver
from detection.transitions import TransitionTracker
from schemas.alert import JOB_HEURISTICS, Alert, HeuristicKind, PollResult, StateTransition
from schemas.record import JobRecord
from schemas.state import JobState, SchedulerState

logger = logging.getLogger(__name__)

SCHEDULER_JOB_ID = "SCHEDULER"
DEFAULT_SUPPRESSION_WINDOW = timedelta(minutes=5)
DEFAULT_STATE_TTL = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebounceMode(str, Enum):
    """How consecutive findings are counted toward the debounce depth.

    Values:
        SHARED: One counter per job shared by every heuristic. It advances
            once per poll in which any heuristic finds something and resets
            when a poll finds nothing. A job flapping between two different
            conditions keeps counting.
        LITERAL: One shared counter advanced by every heuristic that finds
            something, in fixed order, so two findings in one poll count
            twice. Each heuristic triggers if the counter has reached the
            depth right after its own increment. A clear long-running check
            always resets the counter. The other three reset it only when the
            previous poll's last_status names them.
        PER_HEURISTIC: One counter per heuristic, reset as soon as that
            heuristic's own condition clears. A heuristic triggers only when
            its own condition has persisted for the full depth.
            JobState.last_triggered records when each heuristic last
            triggered. It is reported in diagnostics and does not feed back
            into counting.
    """

    SHARED = "shared"
    LITERAL = "literal"
    PER_HEURISTIC = "per_heuristic"


def group_by_job(records: Iterable[JobRecord]) -> dict[str, list[JobRecord]]:
    """Group records by job_id, keeping first-seen job order and record order."""
    grouped: dict[str, list[JobRecord]] = {}
    for record in records:
        grouped.setdefault(record.job_id, []).append(record)
    return grouped


class DetectionEngine:
    """Per-job state, debouncing, suppression, and transition tracking.

    Attributes:
        _resolver: Supplies effective thresholds per job, every poll.
        _mode: Debounce counting strategy.
        _clock: Returns the current time. Injected so tests can drive time.
        _suppression_window: Minimum spacing between alerts for one job.
        _state_ttl: Idle time after which a job's state is forgotten.
        _store: Per-job state arena.
        _scheduler: Scheduler liveness state.
        _lock: Serializes polls against each other and against snapshots.
    """

    def __init__(
        self,
        resolver: ThresholdResolver,
        mode: DebounceMode = DebounceMode.SHARED,
        clock: Callable[[], datetime] = utcnow,
        suppression_window: timedelta = DEFAULT_SUPPRESSION_WINDOW,
        state_ttl: timedelta = DEFAULT_STATE_TTL,
    ) -> None:
        self._resolver = resolver
        self._mode = DebounceMode(mode)
        self._clock = clock
        self._suppression_window = suppression_window
        self._state_ttl = state_ttl

        self._heuristics = JobHeuristics()
        self._tracker = TransitionTracker()
        self._store = JobStateStore()
        self._scheduler = SchedulerState()
        self._lock = threading.Lock()

    @property
    def mode(self) -> DebounceMode:
        return self._mode

    def evaluate(self, records: Iterable[JobRecord]) -> PollResult:
        """Evaluate one poll's batch and return its alerts and transitions.

        Args:
            records: Every record the source returned for this poll. Records
                for one job must be ordered most recent first.

        Returns:
            A PollResult. Alerts are ordered by job first-seen order, then by
            heuristic order. Never raises for data conditions.
        """
        batch = list(records)

        with self._lock:
            now = self._clock()
            grouped = group_by_job(batch)
            alerts: list[Alert] = []
            transitions: list[StateTransition] = []

            for job_id, job_records in grouped.items():
                thresholds = self._resolver.resolve(job_id)
                state = self._store.get_or_create(job_id, self._resolver.group_for(job_id))
                state.last_checked = now

                findings = self._heuristics.evaluate(job_records, thresholds, now)
                triggers = self._debounce(state, findings, thresholds.threshold_checks, now)

                alerts.extend(self._surface(state, triggers, now))

                transition = self._tracker.track(state, job_records, triggers, now)
                if transition is not None:
                    transitions.append(transition)

            evicted = self._store.evict_idle(now - self._state_ttl)

        logger.debug(
            "Evaluated %d records across %d jobs: %d alerts, %d transitions.",
            len(batch),
            len(grouped),
            len(alerts),
            len(transitions),
        )

        return PollResult(
            polled_at=now,
            record_count=len(batch),
            job_count=len(grouped),
            alerts=alerts,
            transitions=transitions,
            evicted=evicted,
        )

    def check_scheduler(self, probe: SchedulerProbe) -> Alert | None:
        """Run the scheduler liveness check and return an alert if it fires.

        The probe is queried before the lock is taken. If either query
        fails, the scheduler state is left untouched and None is returned.

        Args:
            probe: Source of the recently-created and upcoming-pending counts.

        Returns:
            An Alert for the reserved "SCHEDULER" identifier once inactivity
            has persisted for the debounce depth and the suppression window
            has elapsed, otherwise None.
        """
        thresholds = self._resolver.resolve_global()
        observation = observe_scheduler(probe, thresholds)
        if observation is None:
            return None

        with self._lock:
            now = self._clock()
            state = self._scheduler
            state.last_checked = now

            if observation.active:
                if state.consecutive_inactive:
                    logger.info("Cron scheduler is active again.")
                state.consecutive_inactive = 0
                return None

            state.consecutive_inactive += 1
            logger.debug("Scheduler inactive for %d consecutive checks.", state.consecutive_inactive)

            if state.consecutive_inactive < thresholds.threshold_checks:
                return None
            if self._suppressed(state.last_alert_time, now):
                return None

            state.last_alert_time = now
            return Alert(
                job_id=SCHEDULER_JOB_ID,
                group=SCHEDULER_JOB_ID.lower(),
                kind=HeuristicKind.SCHEDULER_INACTIVE,
                reason=observation.reason,
                consecutive_stuck=state.consecutive_inactive,
                detected_at=now,
            )

    # ── Diagnostics ───────────────────────────────────────────────────────────

    def job_states(self) -> dict[str, JobState]:
        """Return copies of every tracked job's state."""
        with self._lock:
            return self._store.snapshot()

    def job_state(self, job_id: str) -> JobState | None:
        """Return a copy of one job's state, or None if it is not tracked."""
        with self._lock:
            return self._store.get_copy(job_id)

    def scheduler_state(self) -> SchedulerState:
        """Return a copy of the scheduler liveness state."""
        with self._lock:
            return self._scheduler.copy()

    # ── Private ───────────────────────────────────────────────────────────────

    def _debounce(
        self, state: JobState, findings: list[Finding], depth: int, now: datetime
    ) -> list[Trigger]:
        """Advance the job's counters and return the findings that triggered."""
        by_kind = {f.kind: f for f in findings}

        # Per-heuristic counters are kept in every mode. They drive
        # triggering only in PER_HEURISTIC mode.
        for kind in JOB_HEURISTICS:
            if kind in by_kind:
                state.counters[kind] = state.counters.get(kind, 0) + 1
            else:
                state.counters.pop(kind, None)

        error = by_kind.get(HeuristicKind.CONSECUTIVE_ERRORS)
        missed = by_kind.get(HeuristicKind.MISSED_EXECUTIONS)
        state.error_streak = error.error_count if error else 0
        state.missed_streak = missed.missed_count if missed else 0
        previous_status = state.last_status
        state.last_status = findings[0].kind if findings else None

        if self._mode is DebounceMode.SHARED:
            triggers = self._debounce_shared(state, findings, depth)
        elif self._mode is DebounceMode.LITERAL:
            triggers = self._debounce_literal(state, by_kind, previous_status, depth)
        else:
            triggers = self._debounce_per_heuristic(state, findings, depth)

        for trigger in triggers:
            state.last_triggered[trigger.finding.kind] = now
        return triggers

    def _debounce_shared(self, state: JobState, findings: list[Finding], depth: int) -> list[Trigger]:
        if not findings:
            if state.consecutive_stuck:
                logger.debug("Job '%s' conditions cleared, resetting streak.", state.job_id)
            state.consecutive_stuck = 0
            return []

        state.consecutive_stuck += 1
        if state.consecutive_stuck < depth:
            return []
        return [Trigger(finding=f, consecutive_stuck=state.consecutive_stuck) for f in findings]

    def _debounce_literal(
        self,
        state: JobState,
        by_kind: dict[HeuristicKind, Finding],
        previous_status: HeuristicKind | None,
        depth: int,
    ) -> list[Trigger]:
        triggers: list[Trigger] = []
        for kind in JOB_HEURISTICS:
            finding = by_kind.get(kind)
            if finding is None:
                if kind is HeuristicKind.LONG_RUNNING or previous_status is kind:
                    state.consecutive_stuck = 0
                continue

            state.consecutive_stuck += 1
            if state.consecutive_stuck >= depth:
                triggers.append(Trigger(finding=finding, consecutive_stuck=state.consecutive_stuck))
        return triggers

    def _debounce_per_heuristic(
        self, state: JobState, findings: list[Finding], depth: int
    ) -> list[Trigger]:
        state.consecutive_stuck = max(state.counters.values(), default=0)
        return [
            Trigger(finding=f, consecutive_stuck=state.counters[f.kind])
            for f in findings
            if state.counters[f.kind] >= depth
        ]

    def _surface(self, state: JobState, triggers: list[Trigger], now: datetime) -> list[Alert]:
        """Turn triggers into alerts, at most one per suppression window."""
        alerts: list[Alert] = []
        for trigger in triggers:
            if self._suppressed(state.last_alert_time, now):
                logger.debug(
                    "Suppressed %s alert for '%s' (last alert at %s).",
                    trigger.finding.kind.value,
                    state.job_id,
                    state.last_alert_time,
                )
                continue
            state.last_alert_time = now
            alerts.append(self._to_alert(state, trigger, now))
        return alerts

    def _suppressed(self, last_alert_time: datetime | None, now: datetime) -> bool:
        return last_alert_time is not None and now - last_alert_time < self._suppression_window

    @staticmethod
    def _to_alert(state: JobState, trigger: Trigger, now: datetime) -> Alert:
        f = trigger.finding
        return Alert(
            job_id=state.job_id,
            group=state.group,
            kind=f.kind,
            status=f.status,
            reason=f.reason,
            running_time=f.running_time,
            pending_count=f.pending_count,
            error_count=f.error_count,
            missed_count=f.missed_count,
            consecutive_stuck=trigger.consecutive_stuck,
            scheduled_at=f.scheduled_at,
            executed_at=f.executed_at,
            message=f.message,
            detected_at=now,
        )
