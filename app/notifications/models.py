"""
In-app notification inbox.

Order, payment, escrow and dispute events leave a Notification for every
affected party. Delivery is best effort: the escrow flow never waits on or
fails because of a notification (see NotificationService.notify).
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class NotificationCategory(models.TextChoices):
    """What kind of event produced the notification."""

    ORDER = "order", "Order"
    PAYMENT = "payment", "Payment"
    ESCROW = "escrow", "Escrow"
    DISPUTE = "dispute", "Dispute"
    PRODUCT = "product", "Product"
    OTHER = "other", "Other"


class Notification(BaseModel):
    """
    A message addressed to one user.

    Fields:
        recipient: User who receives the notification
        title: Short headline (e.g. "Payment Received")
        body: Message text
        category: NotificationCategory
        link: Client deep-link (e.g. "/orders/<id>")
        data: Free-form metadata (order id, amounts, event name)
        is_read: Read status
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User who receives this notification",
    )
    title = models.CharField(
        max_length=200,
        help_text="Short headline",
    )
    body = models.TextField(
        blank=True,
        default="",
        help_text="Message text",
    )
    category = models.CharField(
        max_length=20,
        choices=NotificationCategory.choices,
        default=NotificationCategory.OTHER,
        db_index=True,
        help_text="Event category",
    )
    link = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Client deep-link for this notification",
    )
    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional metadata",
    )
    is_read = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the recipient has read this notification",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read"], name="notif_recipient_read_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} -> {self.recipient_id}"
