"""RecordSource abstract base class.

Defines the interface every job record source must implement. The monitor
service and the detection engine depend only on this interface, never on a
concrete backend. Swapping the SQL table for a fixture (or anything else)
means writing a new class that satisfies it, with no changes elsewhere.

A RecordSource also satisfies detection.scheduler.SchedulerProbe, so the
same object answers the scheduler liveness questions.
"""

from abc import ABC, abstractmethod
from datetime import timedelta

from schemas.record import JobRecord


class SourceError(Exception):
    """A record source could not answer a query.

    Raised for transient fetch failures (connection refused, missing fixture,
    malformed query result). The monitor service abandons the poll and tries
    again at the next interval.
    """


class RecordSource(ABC):
    """Abstract base class for job record sources."""

    @abstractmethod
    def fetch_recent(self, lookback: timedelta) -> list[JobRecord]:
        """Return every record created within the lookback window.

        Args:
            lookback: How far back to read, relative to now.

        Returns:
            Records ordered most recent first (by created_at). Rows that
            cannot be turned into a JobRecord are skipped and logged.

        Raises:
            SourceError: If the source cannot be read.
        """
        ...

    @abstractmethod
    def count_recently_created(self, minutes: int) -> int:
        """Return the number of jobs created within the last `minutes`.

        Raises:
            SourceError: If the count cannot be determined.
        """
        ...

    @abstractmethod
    def count_upcoming_pending(self, minutes: int) -> int:
        """Return the number of pending jobs scheduled within the next `minutes`.

        Raises:
            SourceError: If the count cannot be determined.
        """
        ...

    @abstractmethod
    def total_count(self) -> int:
        """Return the total number of rows available. Used by connectivity checks.

        Raises:
            SourceError: If the source cannot be read.
        """
        ...

    def close(self) -> None:
        """Release any held resources. Default is a no-op."""

    @property
    def description(self) -> str:
        """Short human-readable description for logs and the CLI."""
        return type(self).__name__
