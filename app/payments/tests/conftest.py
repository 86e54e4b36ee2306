"""
Pytest fixtures for payment tests.

Usage:
    def test_retry(failed_webhook):
        assert failed_webhook.can_retry
"""

from unittest.mock import MagicMock, patch

import pytest

from payments.state_machines import WebhookEventStatus
from payments.tests.factories import WebhookEventFactory


@pytest.fixture
def mock_redis():
    """Redis connection used by ``payments.locks``."""
    with patch("payments.locks.get_redis_connection") as mock_get_conn:
        redis_instance = MagicMock()
        mock_get_conn.return_value = redis_instance
        yield redis_instance


@pytest.fixture
def pending_webhook(db):
    return WebhookEventFactory()


@pytest.fixture
def failed_webhook(db):
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        error_message="Processing error",
        retry_count=1,
    )
