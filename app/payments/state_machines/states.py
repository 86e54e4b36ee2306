"""
Status enums for payment-side models.

WebhookEvent:
    pending → processing → processed
    pending → processing → failed → processing (retry)

Escrow ledger states live with the Order aggregate in
``orders.state_machines``.
"""

from django.db import models


class WebhookEventStatus(models.TextChoices):
    """Processing status of a stored Stripe event."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
