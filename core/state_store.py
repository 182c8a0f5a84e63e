"""Job state store.

JobStateStore is the keyed arena of JobState records owned by the detection
engine. It lives for the lifetime of the engine, unlike the records of a
single poll, and is the only place per-job state is kept.

The store itself is not thread-safe. The engine serializes every access
under its own lock. Callers outside the engine never receive a reference to
a stored JobState; snapshot() and get_copy() hand out copies.

Lifecycle of an entry:
    1. Created lazily by get_or_create() the first time a job is observed
    2. Mutated in place by the engine on every poll that sees the job
    3. Evicted by evict_idle() once its last_checked falls behind the cutoff
"""

import logging
from datetime import datetime

from schemas.state import JobState

logger = logging.getLogger(__name__)


class JobStateStore:
    """Per-job state keyed by job identifier.

    Attributes:
        _states: Internal dict mapping job_id to its live JobState.
    """

    def __init__(self) -> None:
        """Initialise an empty store. Jobs are only added when observed."""
        self._states: dict[str, JobState] = {}

    def get_or_create(self, job_id: str, group: str) -> JobState:
        """Return the live state for a job, creating it on first sight.

        Args:
            job_id: The job identifier.
            group: Threshold group, recorded only when the state is created.

        Returns:
            The stored JobState. Engine-internal: this is the live object.
        """
        state = self._states.get(job_id)
        if state is None:
            state = JobState(job_id=job_id, group=group)
            self._states[job_id] = state
            logger.debug("Tracking new job '%s' (group '%s').", job_id, group)
        return state

    def get_copy(self, job_id: str) -> JobState | None:
        """Return a copy of one job's state, or None if it is not tracked."""
        state = self._states.get(job_id)
        return state.copy() if state is not None else None

    def evict_idle(self, cutoff: datetime) -> list[str]:
        """Remove every state whose last_checked is before the cutoff.

        Args:
            cutoff: States last checked strictly before this are dropped,
                along with their health classification.

        Returns:
            The evicted job identifiers, sorted.
        """
        stale = sorted(
            job_id
            for job_id, state in self._states.items()
            if state.last_checked is not None and state.last_checked < cutoff
        )
        for job_id in stale:
            del self._states[job_id]

        if stale:
            logger.info("Evicted %d idle job states: %s", len(stale), ", ".join(stale))
        return stale

    def snapshot(self) -> dict[str, JobState]:
        """Return copies of all states so callers cannot mutate the store."""
        return {job_id: state.copy() for job_id, state in self._states.items()}

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._states

    def __len__(self) -> int:
        return len(self._states)
