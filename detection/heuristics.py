"""Job heuristics: deterministic stuck-condition checks over one job's records.

Detects:
- Long-running: first running record started longer ago than max_running_time
- Pending accumulation: more pending records than max_pending_count
- Consecutive errors: consecutive_errors errors in a row, broken by a success
- Missed executions: at least max_missed_count missed records

Every check is a pure function of the records, the thresholds, and the poll
time. No state is read or written here. Debouncing, suppression, and health
classification all happen in the engine, on top of the findings returned by
evaluate(). Same input always produces the same output.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from schemas.alert import HeuristicKind
from schemas.record import JobRecord, JobStatus
from schemas.thresholds import DetectionThresholds
from utils.durations import format_duration


@dataclass(frozen=True)
class Finding:
    """One heuristic's verdict that a condition currently holds.

    A dataclass rather than a Pydantic model because it never leaves the
    engine. The engine turns it into an Alert or a StateTransition.

    Attributes:
        kind: Heuristic that produced the finding.
        status: Status of the record the finding is about.
        reason: Human-readable description, copied into alerts.
        running_time / pending_count / error_count / missed_count: The
            numeric evidence. Only the one matching kind is set.
        scheduled_at / executed_at: Timestamps of the triggering record,
            when there is a single one.
        message: Diagnostic text of the first error record, if any.
    """

    kind: HeuristicKind
    status: JobStatus
    reason: str
    running_time: timedelta | None = None
    pending_count: int | None = None
    error_count: int | None = None
    missed_count: int | None = None
    scheduled_at: datetime | None = None
    executed_at: datetime | None = None
    message: str | None = None


@dataclass(frozen=True)
class Trigger:
    """A finding whose debounce counter reached the configured depth."""

    finding: Finding
    consecutive_stuck: int


class JobHeuristics:
    """Run the four per-job checks in their fixed order."""

    def evaluate(
        self,
        records: list[JobRecord],
        thresholds: DetectionThresholds,
        now: datetime,
    ) -> list[Finding]:
        """Return the findings for one job, in evaluation order.

        Args:
            records: The job's records for this poll, most recent first.
                Several checks only look at a prefix of this list.
            thresholds: Fully resolved thresholds (no zero placeholders).
            now: Poll time used for elapsed-time calculations.

        Returns:
            Zero to four findings ordered long-running, pending, errors,
            missed. Empty when the job looks healthy.
        """
        checks = (
            self._check_long_running(records, thresholds, now),
            self._check_pending(records, thresholds),
            self._check_errors(records, thresholds),
            self._check_missed(records, thresholds),
        )
        return [finding for finding in checks if finding is not None]

    # ── Private ───────────────────────────────────────────────────────────────

    def _check_long_running(
        self, records: list[JobRecord], t: DetectionThresholds, now: datetime
    ) -> Finding | None:
        # Only the most recent running record with a start time counts.
        running = next(
            (r for r in records if r.status is JobStatus.RUNNING and r.executed_at is not None),
            None,
        )
        if running is None:
            return None

        elapsed = now - running.executed_at
        if elapsed <= t.max_running_time:
            return None

        return Finding(
            kind=HeuristicKind.LONG_RUNNING,
            status=JobStatus.RUNNING,
            reason=(
                "job running longer than max_running_time threshold "
                f"({format_duration(t.max_running_time)})"
            ),
            running_time=elapsed,
            scheduled_at=running.scheduled_at,
            executed_at=running.executed_at,
        )

    def _check_pending(self, records: list[JobRecord], t: DetectionThresholds) -> Finding | None:
        pending = sum(1 for r in records if r.status is JobStatus.PENDING)
        if pending <= t.max_pending_count:
            return None

        return Finding(
            kind=HeuristicKind.PENDING_ACCUMULATION,
            status=JobStatus.PENDING,
            reason=f"too many pending jobs ({pending} exceeds threshold of {t.max_pending_count})",
            pending_count=pending,
        )

    def _check_errors(self, records: list[JobRecord], t: DetectionThresholds) -> Finding | None:
        errors = 0
        first_error: JobRecord | None = None

        for record in records[: t.consecutive_errors * 2]:
            if record.status is JobStatus.SUCCESS:
                break
            if record.status is JobStatus.ERROR:
                errors += 1
                if first_error is None:
                    first_error = record

        if errors < t.consecutive_errors:
            return None

        return Finding(
            kind=HeuristicKind.CONSECUTIVE_ERRORS,
            status=JobStatus.ERROR,
            reason=(
                f"consecutive errors detected ({errors} reached threshold "
                f"of {t.consecutive_errors})"
            ),
            error_count=errors,
            scheduled_at=first_error.scheduled_at,
            executed_at=first_error.executed_at,
            message=first_error.message or None,
        )

    def _check_missed(self, records: list[JobRecord], t: DetectionThresholds) -> Finding | None:
        missed = sum(1 for r in records if r.status is JobStatus.MISSED)
        if missed < t.max_missed_count:
            return None

        return Finding(
            kind=HeuristicKind.MISSED_EXECUTIONS,
            status=JobStatus.MISSED,
            reason=(
                f"too many missed executions ({missed} reached threshold "
                f"of {t.max_missed_count})"
            ),
            missed_count=missed,
        )
