"""
Tests for webhook handler dispatch.

Tests cover:
- Registry and dispatch of known and unknown event types
- Events without an object id
- Handlers applying events to the escrow ledger
"""

from unittest.mock import patch

import pytest

from core.services import ServiceResult
from orders.state_machines import PaymentStatus, TransferStatus
from orders.tests.factories import OrderFactory, TransferRecordFactory
from payments.tests.factories import WebhookEventFactory
from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler

ESCROW_EVENTS = [
    ("payment_intent.amount_capturable_updated", "handle_payment_authorized"),
    ("payment_intent.succeeded", "handle_payment_succeeded"),
    ("payment_intent.payment_failed", "handle_payment_failed"),
    ("charge.refunded", "handle_charge_refunded"),
    ("transfer.paid", "handle_transfer_paid"),
]


def make_event(event_type, obj):
    return WebhookEventFactory(event_type=event_type, payload={"type": event_type, "data": {"object": obj}})


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    @pytest.mark.parametrize("event_type", [event_type for event_type, _ in ESCROW_EVENTS])
    def test_escrow_events_are_registered(self, event_type):
        assert event_type in WEBHOOK_HANDLERS

    def test_register_handler(self, db):
        @register_handler("test.custom_event")
        def handle_custom(webhook_event):
            return ServiceResult.success({"handled": webhook_event.event_type})

        try:
            result = dispatch_webhook(WebhookEventFactory(event_type="test.custom_event"))
        finally:
            WEBHOOK_HANDLERS.pop("test.custom_event")

        assert result.data == {"handled": "test.custom_event"}

    def test_unknown_event_type_is_acknowledged(self, db):
        result = dispatch_webhook(WebhookEventFactory(event_type="customer.created"))

        assert result.success
        assert result.data is None


# =============================================================================
# Dispatch to Reconciliation
# =============================================================================


class TestDispatch:
    @pytest.mark.parametrize(("event_type", "method"), ESCROW_EVENTS)
    def test_passes_event_object_to_reconciliation(self, db, event_type, method):
        obj = {"id": "obj_123", "payment_intent": "pi_123"}

        with patch(f"payments.webhooks.handlers.PaymentReconciliationService.{method}") as mock_handle:
            mock_handle.return_value = ServiceResult.success({"applied": True})

            result = dispatch_webhook(make_event(event_type, obj))

        mock_handle.assert_called_once_with(obj)
        assert result.data == {"applied": True}

    @pytest.mark.parametrize(("event_type", "method"), ESCROW_EVENTS)
    def test_event_without_object_id_is_skipped(self, db, event_type, method):
        with patch(f"payments.webhooks.handlers.PaymentReconciliationService.{method}") as mock_handle:
            result = dispatch_webhook(make_event(event_type, {"object": "payment_intent"}))

        mock_handle.assert_not_called()
        assert result.success
        assert result.data == {"applied": False, "reason": "missing_object"}


@pytest.mark.django_db
class TestLedgerUpdates:
    def test_payment_succeeded_moves_entry_to_completed(self):
        order = OrderFactory()
        entry = TransferRecordFactory(order=order, payment_intent_id="pi_ledger_1", transfer_id="pi_ledger_1")

        result = dispatch_webhook(
            make_event(
                "payment_intent.succeeded",
                {"id": "pi_ledger_1", "status": "succeeded", "latest_charge": "ch_ledger_1"},
            )
        )

        assert result.success
        assert result.data["applied"] is True
        entry.refresh_from_db()
        order.refresh_from_db()
        assert entry.status == TransferStatus.COMPLETED
        assert entry.metadata["charge_id"] == "ch_ledger_1"
        assert order.payment_status == PaymentStatus.HELD_IN_ESCROW

    def test_unmatched_payment_intent_is_acknowledged(self):
        result = dispatch_webhook(make_event("payment_intent.succeeded", {"id": "pi_not_ours"}))

        assert result.success
        assert result.data == {"applied": False, "reason": "unmatched"}

    def test_charge_without_payment_intent(self):
        result = dispatch_webhook(make_event("charge.refunded", {"id": "ch_1", "payment_intent": None}))

        assert result.success
        assert result.data["applied"] is False
