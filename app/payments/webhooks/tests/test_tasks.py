"""
Tests for the webhook Celery tasks.

Tests cover:
- process_webhook_event task
- retry_failed_webhooks task
- cleanup_stuck_webhooks task
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone

from core.services import ServiceResult
from payments.models import WebhookEvent
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES
from payments.state_machines import WebhookEventStatus
from payments.tasks import (
    STUCK_PROCESSING_THRESHOLD_MINUTES,
    cleanup_stuck_webhooks,
    process_webhook_event,
    retry_failed_webhooks,
)
from payments.tests.factories import WebhookEventFactory

# =============================================================================
# process_webhook_event Tests
# =============================================================================


class TestProcessWebhookEvent:
    def test_success_marks_event_processed(self, db, pending_webhook_event):
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success({"applied": True})

            result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "processed"
        assert result["data"] == {"applied": True}
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PROCESSED
        assert pending_webhook_event.processed_at is not None
        assert pending_webhook_event.retry_count == 1

    def test_already_processed_is_skipped(self, db, processed_webhook_event):
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            result = process_webhook_event(str(processed_webhook_event.id))

        assert result["status"] == "already_processed"
        mock_dispatch.assert_not_called()

    def test_event_not_found(self, db):
        result = process_webhook_event(str(uuid4()))

        assert result["status"] == "not_found"

    def test_handler_failure_marks_event_failed(self, db, pending_webhook_event):
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.failure("Ledger entry locked", error_code="LOCKED")

            result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "handler_failed"
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert pending_webhook_event.error_message == "Ledger entry locked"

    def test_exception_marks_event_failed_and_raises(self, db, pending_webhook_event):
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.side_effect = RuntimeError("database went away")

            with pytest.raises(RuntimeError):
                process_webhook_event(str(pending_webhook_event.id))

        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert "RuntimeError" in pending_webhook_event.error_message

    def test_retry_increments_attempts(self, db, failed_webhook_event):
        with patch("payments.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            process_webhook_event(str(failed_webhook_event.id))

        failed_webhook_event.refresh_from_db()
        assert failed_webhook_event.retry_count == 2
        assert failed_webhook_event.is_processed


# =============================================================================
# retry_failed_webhooks Tests
# =============================================================================


class TestRetryFailedWebhooks:
    def test_queues_failed_events(self, db, failed_webhook_event):
        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(failed_webhook_event.id))

    def test_skips_events_out_of_retries(self, db):
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES)

        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 0}
        mock_delay.assert_not_called()

    def test_ignores_other_statuses(self, db, pending_webhook_event, processed_webhook_event):
        with patch("payments.tasks.process_webhook_event.delay") as mock_delay:
            retry_failed_webhooks()

        mock_delay.assert_not_called()


# =============================================================================
# cleanup_stuck_webhooks Tests
# =============================================================================


class TestCleanupStuckWebhooks:
    def _age(self, event, minutes):
        WebhookEvent.objects.filter(pk=event.pk).update(updated_at=timezone.now() - timedelta(minutes=minutes))

    def test_resets_stuck_events(self, db, processing_webhook_event):
        self._age(processing_webhook_event, STUCK_PROCESSING_THRESHOLD_MINUTES + 5)

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        processing_webhook_event.refresh_from_db()
        assert processing_webhook_event.status == WebhookEventStatus.FAILED
        assert "timed out" in processing_webhook_event.error_message

    def test_leaves_recent_processing_events(self, db, processing_webhook_event):
        self._age(processing_webhook_event, 1)

        assert cleanup_stuck_webhooks() == {"reset_count": 0}

    def test_only_processing_status(self, db, failed_webhook_event):
        self._age(failed_webhook_event, STUCK_PROCESSING_THRESHOLD_MINUTES + 5)

        assert cleanup_stuck_webhooks() == {"reset_count": 0}
