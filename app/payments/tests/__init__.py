"""
Tests for the payments app.

- test_locks.py: Redis order lock and version checks
- test_models.py: WebhookEvent status helpers
- test_tasks.py: Webhook processing, retry and cleanup tasks

Usage:
    pytest payments/tests/
"""
