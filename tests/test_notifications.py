import json
import logging
from datetime import datetime

import httpx
import pytest
import respx
from fastapi import BackgroundTasks
from httpx import Response

from insurance_claims.model import ClaimStatus, ClaimTransitionEvent
from insurance_claims.dependencies import get_audit_notifier
from insurance_claims.services.notifications import BackgroundNotifier, LoggingNotifier, WebhookNotifier, get_notifier

WEBHOOK_URL = "https://audit.example.org/claims/events"


@pytest.fixture
def mocked_httpx():
    with respx.mock:
        yield respx


@pytest.fixture
def event():
    return ClaimTransitionEvent(
        claim_id=7,
        from_status=ClaimStatus.processing,
        to_status=ClaimStatus.approved,
        actor="insurer.bot",
        timestamp=datetime(2025, 3, 1, 12, 30),
    )


def test_webhook_posts_event_payload(mocked_httpx, event):
    route = mocked_httpx.post(WEBHOOK_URL).mock(return_value=Response(202))

    WebhookNotifier(WEBHOOK_URL).notify(event)

    assert route.called
    body = json.loads(route.calls.last.request.content)
    assert body == {
        "claimId": 7,
        "fromStatus": "processing",
        "toStatus": "approved",
        "actor": "insurer.bot",
        "timestamp": "2025-03-01T12:30:00",
    }


def test_webhook_failure_is_logged_not_raised(mocked_httpx, event, caplog):
    mocked_httpx.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectError("refused"))

    with caplog.at_level(logging.WARNING):
        WebhookNotifier(WEBHOOK_URL).notify(event)

    assert "delivery failed for claim 7" in caplog.text


def test_webhook_error_status_is_logged(mocked_httpx, event, caplog):
    mocked_httpx.post(WEBHOOK_URL).mock(return_value=Response(500))

    with caplog.at_level(logging.WARNING):
        WebhookNotifier(WEBHOOK_URL).notify(event)

    assert "HTTP 500" in caplog.text


def test_logging_notifier(event, caplog):
    with caplog.at_level(logging.INFO):
        LoggingNotifier().notify(event)
    assert "processing -> approved" in caplog.text


def test_get_notifier_follows_config(monkeypatch):
    assert isinstance(get_notifier(), LoggingNotifier)

    monkeypatch.setenv("AUDIT_WEBHOOK_URL", WEBHOOK_URL)
    monkeypatch.setenv("AUDIT_WEBHOOK_TIMEOUT", "2.5")
    notifier = get_notifier()
    assert isinstance(notifier, WebhookNotifier)
    assert notifier.url == WEBHOOK_URL
    assert notifier.timeout == 2.5


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


@pytest.mark.anyio
async def test_background_notifier_defers_delivery(event):
    inner = RecordingNotifier()
    tasks = BackgroundTasks()

    BackgroundNotifier(inner, tasks).notify(event)
    assert inner.events == []

    await tasks()
    assert inner.events == [event]


@pytest.mark.anyio
async def test_background_delivery_failure_is_logged(event, caplog):
    class Exploding:
        def notify(self, event):
            raise RuntimeError("audit sink down")

    tasks = BackgroundTasks()
    BackgroundNotifier(Exploding(), tasks).notify(event)

    with caplog.at_level(logging.ERROR):
        await tasks()
    assert "Audit notifier failed for claim 7" in caplog.text


@pytest.mark.anyio
async def test_webhook_is_not_called_until_tasks_run(mocked_httpx, event):
    route = mocked_httpx.post(WEBHOOK_URL).mock(return_value=Response(202))
    tasks = BackgroundTasks()

    BackgroundNotifier(WebhookNotifier(WEBHOOK_URL), tasks).notify(event)
    assert not route.called

    await tasks()
    assert route.called


def test_request_notifier_wraps_configured_one(monkeypatch):
    monkeypatch.setenv("AUDIT_WEBHOOK_URL", WEBHOOK_URL)
    notifier = get_audit_notifier(BackgroundTasks())

    assert isinstance(notifier, BackgroundNotifier)
    assert isinstance(notifier.notifier, WebhookNotifier)
