"""
Notification service layer.

Services:
    NotificationService: create, fire-and-forget notify, read status, delete

Usage:
    from notifications.services import NotificationService

    # Inside an escrow transaction: delivered only if the transaction commits
    NotificationService.notify_on_commit(
        seller,
        title="New Order",
        body="You received a new order",
        category=NotificationCategory.ORDER,
        link=f"/orders/{order.id}",
        data={"order_id": str(order.id)},
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from core.exceptions import NotFoundError
from core.services import BaseService, ServiceResult
from notifications.models import Notification, NotificationCategory

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        create_notification: Create a notification (raises on failure)
        notify: Create a notification, logging and absorbing any failure
        notify_on_commit: ``notify`` scheduled for after the current transaction
        mark_as_read / mark_all_as_read: Read status
        delete_notification: Remove one of the user's notifications
    """

    @classmethod
    def create_notification(
        cls,
        recipient: User,
        title: str,
        body: str = "",
        category: str = NotificationCategory.OTHER,
        link: str = "",
        data: dict | None = None,
    ) -> Notification:
        notification = Notification.objects.create(
            recipient=recipient,
            title=title,
            body=body,
            category=category,
            link=link,
            data=data or {},
        )
        cls.get_logger().debug(
            f"Created notification {notification.id} for user {recipient.pk}",
            extra={"category": category, "title": title},
        )
        return notification

    @classmethod
    def notify(cls, recipient: User, title: str, **kwargs) -> Notification | None:
        """
        Fire-and-forget notification.

        Any failure is logged and swallowed; callers never branch on the
        result.
        """
        try:
            return cls.create_notification(recipient, title, **kwargs)
        except Exception:
            cls.get_logger().exception(
                "Failed to create notification",
                extra={"recipient_id": getattr(recipient, "pk", None), "title": title},
            )
            return None

    @classmethod
    def notify_on_commit(cls, recipient: User, title: str, **kwargs) -> None:
        """Queue ``notify`` to run once the surrounding transaction commits."""
        transaction.on_commit(lambda: cls.notify(recipient, title, **kwargs))

    @classmethod
    def mark_as_read(cls, notification_id, user: User) -> ServiceResult[Notification]:
        """
        Mark a single notification as read. Idempotent.

        Raises:
            NotFoundError: Notification missing or owned by someone else
        """
        notification = cls._get_owned(notification_id, user)
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])
        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user: User) -> ServiceResult[int]:
        count = Notification.objects.filter(recipient=user, is_read=False).update(is_read=True)
        cls.get_logger().info(f"Marked {count} notifications as read for user {user.pk}")
        return ServiceResult.success(count)

    @classmethod
    def delete_notification(cls, notification_id, user: User) -> None:
        """
        Raises:
            NotFoundError: Notification missing or owned by someone else
        """
        cls._get_owned(notification_id, user).delete()

    @classmethod
    def _get_owned(cls, notification_id, user: User) -> Notification:
        try:
            return Notification.objects.get(pk=notification_id, recipient=user)
        except Notification.DoesNotExist as exc:
            raise NotFoundError(
                "Notification not found",
                error_code="NOTIFICATION_NOT_FOUND",
                details={"notification_id": str(notification_id)},
            ) from exc
