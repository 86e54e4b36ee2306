"""
Payment models.

- WebhookEvent: stored Stripe event for idempotent, retryable processing

The escrow ledger itself (orders, sub-orders, transfer records) lives in
``orders.models``.
"""

from payments.models.webhook_event import WebhookEvent

__all__ = [
    "WebhookEvent",
]
