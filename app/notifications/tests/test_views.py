"""
Tests for the notification API.
"""

import pytest

from notifications.models import Notification
from notifications.tests.factories import NotificationFactory


@pytest.mark.django_db
class TestNotificationList:
    def test_lists_only_own_notifications(self, authenticated_client, user, other_user):
        NotificationFactory.create_batch(2, recipient=user)
        NotificationFactory(recipient=other_user)

        response = authenticated_client.get("/api/v1/notifications/")

        assert response.status_code == 200
        assert response.data["count"] == 2

    def test_filters_by_read_state(self, authenticated_client, unread_notification, read_notification):
        response = authenticated_client.get("/api/v1/notifications/?is_read=false")

        ids = [item["id"] for item in response.data["results"]]
        assert ids == [unread_notification.id]

    def test_unread_count(self, authenticated_client, unread_notification, read_notification):
        response = authenticated_client.get("/api/v1/notifications/unread-count/")

        assert response.data == {"unread_count": 1}


@pytest.mark.django_db
class TestNotificationActions:
    def test_mark_read(self, authenticated_client, unread_notification):
        response = authenticated_client.post(f"/api/v1/notifications/{unread_notification.id}/read/")

        assert response.status_code == 200
        assert response.data["is_read"] is True

    def test_mark_read_of_other_user_is_404(self, authenticated_client, other_user):
        foreign = NotificationFactory(recipient=other_user)

        response = authenticated_client.post(f"/api/v1/notifications/{foreign.id}/read/")

        assert response.status_code == 404
        assert response.data["error_code"] == "NOTIFICATION_NOT_FOUND"

    def test_read_all(self, authenticated_client, user):
        NotificationFactory.create_batch(2, recipient=user)

        response = authenticated_client.post("/api/v1/notifications/read-all/")

        assert response.data == {"marked_count": 2}

    def test_delete(self, authenticated_client, unread_notification):
        response = authenticated_client.delete(f"/api/v1/notifications/{unread_notification.id}/")

        assert response.status_code == 204
        assert not Notification.objects.filter(id=unread_notification.id).exists()
