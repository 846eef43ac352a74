from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from talent_training.core.config import settings
from talent_training.core.errors import NotificationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionEvent:
    first_name: str
    last_name: str
    email: str
    attempt_count: int
    completion_date: datetime

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_payload(self) -> dict:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "name": self.name,
            "email": self.email,
            "attemptCount": int(self.attempt_count),
            "completionDate": self.completion_date.isoformat(),
        }


class NotificationSink(Protocol):
    def notify(self, event: CompletionEvent) -> bool: ...


def render_completion_message(event: CompletionEvent) -> tuple[str, str]:
    """Subject and HTML body of the training-completed notice."""
    subject = f"Training Completion: {event.name}".rstrip()
    when = event.completion_date.strftime("%B %d, %Y %I:%M %p")
    body = (
        "<h1>Training Completion Notification</h1>\n"
        "<p>A user has completed the Talent Training program.</p>\n"
        "<h2>User Details:</h2>\n"
        "<ul>\n"
        f"  <li><strong>Name:</strong> {html.escape(event.name)}</li>\n"
        f"  <li><strong>Email:</strong> {html.escape(event.email)}</li>\n"
        f"  <li><strong>Attempt Count:</strong> {int(event.attempt_count)}</li>\n"
        f"  <li><strong>Completion Date:</strong> {when}</li>\n"
        "</ul>\n"
        "<p>The user has successfully passed all required training modules and the assessment quiz.</p>"
    )
    return subject, body


class CompletionNotifier:
    """Best-effort delivery of the training-completed event.

    With a webhook configured the event is POSTed as JSON; otherwise the
    rendered message is only logged. `notify` never raises.
    """

    def __init__(
        self,
        *,
        webhook_url: str | None = None,
        recipient: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.webhook_url = (webhook_url if webhook_url is not None else settings.notify_webhook_url) or None
        self.recipient = recipient or settings.notify_recipient
        self.timeout_seconds = float(timeout_seconds or settings.notify_timeout_seconds)

    def _deliver(self, event: CompletionEvent) -> None:
        if not event.email:
            raise NotificationError("email is required")

        subject, body = render_completion_message(event)
        if not self.webhook_url:
            log.info("completion notice for %s (no webhook configured): to=%s subject=%r", event.email, self.recipient, subject)
            return

        payload = {**event.to_payload(), "to": self.recipient, "subject": subject, "html": body}
        try:
            with httpx.Client(timeout=httpx.Timeout(self.timeout_seconds)) as client:
                r = client.post(self.webhook_url, json=payload)
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"webhook delivery failed: {e}") from e

    def notify(self, event: CompletionEvent) -> bool:
        try:
            self._deliver(event)
        except NotificationError:
            log.warning("completion notification for %s not delivered", event.email, exc_info=True)
            return False
        log.info("completion notification sent for %s (attempt %s)", event.email, event.attempt_count)
        return True
