"""Fire-and-forget delivery of claim transition events to the audit collaborator."""
import logging
from typing import Optional, Protocol

import httpx
from fastapi import BackgroundTasks

from insurance_claims.config import get_audit_webhook_timeout, get_audit_webhook_url
from insurance_claims.model import ClaimTransitionEvent

logger = logging.getLogger(__name__)


class AuditNotifier(Protocol):
    def notify(self, event: ClaimTransitionEvent) -> None:
        ...


class LoggingNotifier:
    """Default when no webhook is configured: the event only goes to the log."""

    def notify(self, event: ClaimTransitionEvent) -> None:
        logger.info(
            "Claim %s: %s -> %s by %s at %s",
            event.claim_id,
            event.from_status.value if event.from_status else None,
            event.to_status.value,
            event.actor,
            event.timestamp.isoformat(),
        )


class WebhookNotifier:
    """POST each event as JSON. Delivery is not guaranteed; failures are logged and dropped."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def notify(self, event: ClaimTransitionEvent) -> None:
        payload = event.model_dump(mode="json", by_alias=True)
        headers = {"Content-Type": "application/json"}
        try:
            if self._client is not None:
                response = self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.warning("Audit webhook delivery failed for claim %s: %s", event.claim_id, exc)
            return

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Audit webhook returned HTTP %s for claim %s", response.status_code, event.claim_id
            )


class BackgroundNotifier:
    """Hands each event to ``BackgroundTasks`` so delivery runs after the response is sent."""

    def __init__(self, notifier: AuditNotifier, background_tasks: BackgroundTasks):
        self.notifier = notifier
        self.background_tasks = background_tasks

    def notify(self, event: ClaimTransitionEvent) -> None:
        self.background_tasks.add_task(self._deliver, event)

    def _deliver(self, event: ClaimTransitionEvent) -> None:
        try:
            self.notifier.notify(event)
        except Exception:
            logger.exception("Audit notifier failed for claim %s", event.claim_id)


def get_notifier() -> AuditNotifier:
    url = get_audit_webhook_url()
    if url:
        return WebhookNotifier(url, timeout=get_audit_webhook_timeout())
    return LoggingNotifier()
