"""
Tests for the Stripe webhook endpoint.

Tests cover:
- Signature verification
- Event storage and deduplication
- Task queuing and queueing failures
"""

import json
from unittest.mock import patch

import pytest
from django.test import RequestFactory

from payments.exceptions import InvalidSignatureError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.webhooks.tests.conftest import stripe_event
from payments.webhooks.views import stripe_webhook

WEBHOOK_PATH = "/api/v1/payments/webhooks/stripe/"


@pytest.fixture
def rf():
    return RequestFactory()


@pytest.fixture
def verify():
    """Signature check that accepts the posted body as the event."""
    with patch("payments.webhooks.views.StripeAdapter.verify_webhook_signature") as mock_verify:
        mock_verify.side_effect = lambda payload, signature: json.loads(payload)
        yield mock_verify


@pytest.fixture
def mock_delay():
    with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
        yield mock_delay


def post_event(rf, event: dict, signature: str = "t=1,v1=abc"):
    request = rf.post(
        WEBHOOK_PATH,
        data=json.dumps(event),
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE=signature,
    )
    return stripe_webhook(request)


# =============================================================================
# Signature Verification
# =============================================================================


class TestSignature:
    def test_invalid_signature_returns_400(self, rf, db, mock_delay):
        with patch("payments.webhooks.views.StripeAdapter.verify_webhook_signature") as mock_verify:
            mock_verify.side_effect = InvalidSignatureError("Invalid webhook signature")

            response = post_event(rf, stripe_event("payment_intent.succeeded", {"id": "pi_1"}))

        assert response.status_code == 400
        assert WebhookEvent.objects.count() == 0
        mock_delay.assert_not_called()

    def test_missing_signature_returns_400(self, rf, db, settings, mock_delay):
        settings.STRIPE_WEBHOOK_SECRET = "whsec_test"

        response = post_event(rf, stripe_event("payment_intent.succeeded", {"id": "pi_1"}), signature="")

        assert response.status_code == 400
        assert b"Invalid signature" in response.content

    def test_get_not_allowed(self, rf, db):
        response = stripe_webhook(rf.get(WEBHOOK_PATH))

        assert response.status_code == 405


# =============================================================================
# Storage and Queuing
# =============================================================================


class TestStorage:
    def test_stores_and_queues_new_event(self, rf, db, verify, mock_delay):
        event = stripe_event("payment_intent.succeeded", {"id": "pi_123"}, event_id="evt_123")

        response = post_event(rf, event)

        assert response.status_code == 200
        stored = WebhookEvent.objects.get(stripe_event_id="evt_123")
        assert stored.event_type == "payment_intent.succeeded"
        assert stored.status == WebhookEventStatus.PENDING
        assert stored.get_object_id() == "pi_123"
        mock_delay.assert_called_once_with(str(stored.id))

    def test_redelivery_of_processed_event_is_acknowledged(self, rf, db, verify, mock_delay, processed_webhook_event):
        event = stripe_event("payment_intent.succeeded", {"id": "pi_1"}, event_id=processed_webhook_event.stripe_event_id)

        response = post_event(rf, event)

        assert response.status_code == 200
        assert b"Already processed" in response.content
        assert WebhookEvent.objects.count() == 1
        mock_delay.assert_not_called()

    def test_redelivery_of_unprocessed_event_is_requeued(self, rf, db, verify, mock_delay, failed_webhook_event):
        event = stripe_event("payment_intent.succeeded", {"id": "pi_1"}, event_id=failed_webhook_event.stripe_event_id)

        response = post_event(rf, event)

        assert response.status_code == 200
        assert WebhookEvent.objects.count() == 1
        mock_delay.assert_called_once_with(str(failed_webhook_event.id))

    @pytest.mark.parametrize("event", [{"type": "payment_intent.succeeded"}, {"id": "evt_1"}])
    def test_event_without_id_or_type_is_ignored(self, rf, db, verify, mock_delay, event):
        response = post_event(rf, event)

        assert response.status_code == 200
        assert WebhookEvent.objects.count() == 0
        mock_delay.assert_not_called()

    def test_queueing_failure_still_returns_200(self, rf, db, verify, mock_delay):
        mock_delay.side_effect = ConnectionError("broker down")
        event = stripe_event("charge.refunded", {"id": "ch_1"}, event_id="evt_broker")

        response = post_event(rf, event)

        assert response.status_code == 200
        stored = WebhookEvent.objects.get(stripe_event_id="evt_broker")
        assert stored.status == WebhookEventStatus.FAILED
        assert "ConnectionError" in stored.error_message
