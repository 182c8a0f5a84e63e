"""Detection threshold schemas.

DetectionThresholds is the effective set of limits the heuristics compare
against for one job. GroupOverride holds the optional per-group replacements
that the threshold resolver merges over the global defaults.

Zero is never a real limit: a zero field means "use the built-in default",
and with_defaults() is what turns a partially configured threshold set into
one the heuristics can use.
"""

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_RUNNING_TIME = timedelta(minutes=30)
DEFAULT_MAX_PENDING_COUNT = 20
DEFAULT_CONSECUTIVE_ERRORS = 3
DEFAULT_MAX_MISSED_COUNT = 5
DEFAULT_LOOKBACK_WINDOW = timedelta(hours=1)
DEFAULT_THRESHOLD_CHECKS = 2
DEFAULT_SCHEDULER_INACTIVITY_MINUTES = 10
DEFAULT_SCHEDULER_LOOKAHEAD_MINUTES = 15


def _non_negative(value: timedelta | None) -> timedelta | None:
    if value is not None and value < timedelta(0):
        raise ValueError("duration must not be negative")
    return value


class DetectionThresholds(BaseModel):
    """Effective detection limits for one job.

    Attributes:
        max_running_time: A running execution older than this is stuck.
        max_pending_count: More pending rows than this is an accumulation.
        consecutive_errors: This many errors in a row (no success between)
            is a failing job.
        max_missed_count: This many missed rows in the window is a problem.
        lookback_window: How far back the record source reads each poll.
        threshold_checks: Debounce depth. Consecutive polls a condition
            must hold before it is surfaced.
        scheduler_inactivity_minutes: The scheduler is idle if it created
            nothing in this many minutes...
        scheduler_lookahead_minutes: ...and has nothing pending in the
            next this-many minutes.
    """

    model_config = ConfigDict(frozen=True)

    max_running_time: timedelta = timedelta(0)
    max_pending_count: int = Field(default=0, ge=0)
    consecutive_errors: int = Field(default=0, ge=0)
    max_missed_count: int = Field(default=0, ge=0)
    lookback_window: timedelta = timedelta(0)
    threshold_checks: int = Field(default=0, ge=0)
    scheduler_inactivity_minutes: int = Field(default=0, ge=0)
    scheduler_lookahead_minutes: int = Field(default=0, ge=0)

    @field_validator("max_running_time", "lookback_window")
    @classmethod
    def _check_durations(cls, value: timedelta) -> timedelta:
        return _non_negative(value)

    def with_defaults(self) -> "DetectionThresholds":
        """Return a copy with every zero field replaced by its built-in default."""
        return self.model_copy(update={
            "max_running_time": self.max_running_time or DEFAULT_MAX_RUNNING_TIME,
            "max_pending_count": self.max_pending_count or DEFAULT_MAX_PENDING_COUNT,
            "consecutive_errors": self.consecutive_errors or DEFAULT_CONSECUTIVE_ERRORS,
            "max_missed_count": self.max_missed_count or DEFAULT_MAX_MISSED_COUNT,
            "lookback_window": self.lookback_window or DEFAULT_LOOKBACK_WINDOW,
            "threshold_checks": self.threshold_checks or DEFAULT_THRESHOLD_CHECKS,
            "scheduler_inactivity_minutes": (
                self.scheduler_inactivity_minutes or DEFAULT_SCHEDULER_INACTIVITY_MINUTES
            ),
            "scheduler_lookahead_minutes": (
                self.scheduler_lookahead_minutes or DEFAULT_SCHEDULER_LOOKAHEAD_MINUTES
            ),
        })


class GroupOverride(BaseModel):
    """Per-group replacements for the global detection thresholds.

    A job belongs to a group when its identifier starts with "<name>_".
    Fields left as None inherit the global value.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    max_running_time: timedelta | None = None
    max_pending_count: int | None = Field(default=None, ge=0)
    consecutive_errors: int | None = Field(default=None, ge=0)
    max_missed_count: int | None = Field(default=None, ge=0)
    threshold_checks: int | None = Field(default=None, ge=0)

    @field_validator("max_running_time")
    @classmethod
    def _check_durations(cls, value: timedelta | None) -> timedelta | None:
        return _non_negative(value)

    def overrides(self) -> dict:
        """Return only the fields this group actually sets."""
        return self.model_dump(exclude={"name"}, exclude_none=True)
