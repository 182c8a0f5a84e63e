"""Notification dispatcher.

Sits between the detection engine and the notifiers. The engine reports
every health flip; the dispatcher decides which of them are worth a message:

- Alerting transitions respect alert_cooldown per job.
- Recovery transitions respect recovery_cooldown per job, and are dropped
  entirely when send_recovery is off.
- Both kinds share one last-sent timestamp per job, so a recovery that
  arrives right after an alert is measured against that alert.

Delivery failures are logged per notifier and never propagate. One broken
webhook must not stop the others, and must never abort a poll.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from notify.base import NotificationError, Notifier
from schemas.alert import StateTransition

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Apply cooldowns and fan transitions out to every notifier.

    Attributes:
        _notifiers: Destinations, called in order.
        _alert_cooldown: Minimum spacing before an alerting notification.
        _recovery_cooldown: Minimum spacing before a recovery notification.
        _send_recovery: Whether recovery notifications are sent at all.
        _last_sent: job_id → time of the last delivered notification.
    """

    def __init__(
        self,
        notifiers: list[Notifier],
        alert_cooldown: timedelta = timedelta(minutes=30),
        recovery_cooldown: timedelta = timedelta(0),
        send_recovery: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._notifiers = list(notifiers)
        self._alert_cooldown = alert_cooldown
        self._recovery_cooldown = recovery_cooldown
        self._send_recovery = send_recovery
        self._clock = clock
        self._last_sent: dict[str, datetime] = {}

    @property
    def enabled(self) -> bool:
        return bool(self._notifiers)

    def dispatch(self, transitions: list[StateTransition]) -> int:
        """Deliver eligible transitions and return how many were sent.

        A transition counts as sent when at least one notifier accepted it.
        """
        if not self._notifiers:
            return 0

        self._prune()

        sent = 0
        for transition in transitions:
            if self._should_send(transition):
                if self._deliver(transition):
                    self._last_sent[transition.job_id] = self._clock()
                    sent += 1
        return sent

    def close(self) -> None:
        for notifier in self._notifiers:
            notifier.close()

    # ── Private ───────────────────────────────────────────────────────────────

    def _prune(self) -> None:
        """Forget jobs whose last notification is older than every cooldown."""
        cutoff = self._clock() - max(self._alert_cooldown, self._recovery_cooldown)
        for job_id, last in list(self._last_sent.items()):
            if last <= cutoff:
                del self._last_sent[job_id]

    def _should_send(self, transition: StateTransition) -> bool:
        if transition.is_recovery:
            if not self._send_recovery:
                logger.debug("Skipping recovery notification for '%s' (disabled).", transition.job_id)
                return False
            cooldown = self._recovery_cooldown
        else:
            cooldown = self._alert_cooldown

        last = self._last_sent.get(transition.job_id)
        if last is not None and self._clock() - last < cooldown:
            logger.debug(
                "Skipping %s notification for '%s' (cooldown %s active).",
                transition.to_state.value,
                transition.job_id,
                cooldown,
            )
            return False
        return True

    def _deliver(self, transition: StateTransition) -> bool:
        delivered = False
        for notifier in self._notifiers:
            try:
                notifier.send(transition)
                delivered = True
            except NotificationError as exc:
                logger.error(
                    "Notifier '%s' failed for '%s': %s", notifier.name, transition.job_id, exc
                )
            except Exception as exc:
                logger.exception(
                    "Notifier '%s' raised unexpectedly for '%s': %s",
                    notifier.name,
                    transition.job_id,
                    exc,
                )

        if delivered:
            logger.info(
                "Sent %s notification for '%s'.", transition.to_state.value, transition.job_id
            )
        return delivered
