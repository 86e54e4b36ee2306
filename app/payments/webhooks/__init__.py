"""
Stripe webhook ingestion.

``views.stripe_webhook`` verifies and stores events; ``handlers`` maps
event types to escrow reconciliation.
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
