"""
Pytest fixtures for webhook tests.

Provides stored events in each processing state and a helper for
building Stripe event payloads.
"""

import uuid

import pytest

from payments.state_machines import WebhookEventStatus
from payments.tests.factories import WebhookEventFactory


def stripe_event(event_type: str, obj: dict, event_id: str | None = None) -> dict:
    """A Stripe event body as delivered to the endpoint."""
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


@pytest.fixture
def pending_webhook_event(db):
    return WebhookEventFactory()


@pytest.fixture
def processing_webhook_event(db):
    return WebhookEventFactory(status=WebhookEventStatus.PROCESSING, retry_count=1)


@pytest.fixture
def processed_webhook_event(db):
    return WebhookEventFactory(status=WebhookEventStatus.PROCESSED)


@pytest.fixture
def failed_webhook_event(db):
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        error_message="Handler returned failure",
        retry_count=1,
    )
