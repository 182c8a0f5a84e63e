"""Scheduler liveness probe.

The per-job heuristics cannot see a scheduler that has stopped creating rows
altogether: a dead scheduler looks like a quiet table. This check asks the
record source two questions instead:

1. How many jobs were created in the last `scheduler_inactivity_minutes`?
2. How many pending jobs are scheduled in the next `scheduler_lookahead_minutes`?

Either answer being positive means the scheduler is alive. Both being zero
means it is inactive. If either question cannot be answered, the check
yields no observation at all. An unreachable source must never be reported
as a stopped scheduler.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from schemas.thresholds import DetectionThresholds

logger = logging.getLogger(__name__)


class SchedulerProbe(Protocol):
    """The two counts the scheduler check needs. Record sources implement this."""

    def count_recently_created(self, minutes: int) -> int:
        """Return the number of jobs created within the last `minutes`."""

    def count_upcoming_pending(self, minutes: int) -> int:
        """Return the number of pending jobs scheduled within the next `minutes`."""


@dataclass(frozen=True)
class SchedulerObservation:
    """Answers to both probe questions for one poll."""

    recently_created: int
    upcoming_pending: int
    inactivity_minutes: int
    lookahead_minutes: int

    @property
    def active(self) -> bool:
        return self.recently_created > 0 or self.upcoming_pending > 0

    @property
    def reason(self) -> str:
        return (
            f"cron scheduler appears stopped: no jobs created in the last "
            f"{self.inactivity_minutes} minutes and no pending jobs scheduled "
            f"in the next {self.lookahead_minutes} minutes"
        )


def observe_scheduler(
    probe: SchedulerProbe, thresholds: DetectionThresholds
) -> SchedulerObservation | None:
    """Query both counts and return them, or None if either query fails.

    Args:
        probe: Anything that can answer the two count questions.
        thresholds: Resolved global thresholds carrying both windows.

    Returns:
        A SchedulerObservation, or None when liveness cannot be determined
        this poll. Failures are logged and never raised.
    """
    inactivity = thresholds.scheduler_inactivity_minutes
    lookahead = thresholds.scheduler_lookahead_minutes

    try:
        created = probe.count_recently_created(inactivity)
        upcoming = probe.count_upcoming_pending(lookahead)
    except Exception as exc:
        logger.warning("Scheduler liveness undetermined this poll, skipping. Error: %s", exc)
        return None

    return SchedulerObservation(
        recently_created=created,
        upcoming_pending=upcoming,
        inactivity_minutes=inactivity,
        lookahead_minutes=lookahead,
    )
