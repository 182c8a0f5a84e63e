"""Notifier abstract base class.

A notifier delivers one state transition to one kind of destination. The
dispatcher decides whether a transition should be delivered at all
(cooldowns, recovery on/off). Notifiers just deliver.
"""

from abc import ABC, abstractmethod

from schemas.alert import StateTransition


class NotificationError(Exception):
    """A notifier failed to deliver a transition to at least one destination."""


class Notifier(ABC):
    """Abstract base class for notification transports."""

    name: str = "notifier"

    @abstractmethod
    def send(self, transition: StateTransition) -> None:
        """Deliver one transition.

        Raises:
            NotificationError: If delivery failed. The dispatcher logs it
                and carries on with the remaining notifiers.
        """
        ...

    def close(self) -> None:
        """Release any held resources. Default is a no-op."""
