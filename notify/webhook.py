"""Generic JSON webhook notifier.

Posts every transition to each configured URL as:

    {
        "text":  "<plain-text summary from notify.formatter>",
        "event": { ...StateTransition as JSON... }
    }

"text" is enough for chat tools that accept a bare text field. "event"
carries the full structured transition for anything that wants to render it
itself. No provider-specific layout is produced here.
"""

import logging

import httpx

from notify.base import NotificationError, Notifier
from notify.formatter import format_transition
from schemas.alert import StateTransition

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class WebhookNotifier(Notifier):
    """Deliver transitions to one or more HTTP webhooks.

    Every URL is attempted even if an earlier one fails; a single
    NotificationError summarising all failures is raised at the end.

    Attributes:
        urls: Destination webhook URLs.
        _client: Shared httpx client. Injected in tests via a MockTransport.
    """

    name = "webhook"

    def __init__(
        self,
        urls: list[str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        if not urls:
            raise ValueError("WebhookNotifier needs at least one URL.")
        self.urls = list(urls)
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, transition: StateTransition) -> None:
        payload = build_payload(transition)
        failures: list[str] = []

        for url in self.urls:
            try:
                response = self._client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                # str(exc) would include the full URL.
                failures.append(f"{_redact(url)}: HTTP {exc.response.status_code}")
            except httpx.HTTPError as exc:
                failures.append(f"{_redact(url)}: {type(exc).__name__}")
            else:
                continue
            logger.error("Webhook delivery failed: %s", failures[-1])

        if failures:
            raise NotificationError(
                f"{len(failures)}/{len(self.urls)} webhook deliveries failed: " + "; ".join(failures)
            )

    def close(self) -> None:
        self._client.close()


def build_payload(transition: StateTransition) -> dict:
    """Return the JSON document posted for a transition."""
    return {
        "text": format_transition(transition),
        "event": transition.model_dump(mode="json"),
    }


def _redact(url: str) -> str:
    # Webhook URLs embed their secret in the path.
    parsed = httpx.URL(url)
    return f"{parsed.scheme}://{parsed.host}/…"
