"""
Notifications app: in-app inbox for order, payment, escrow and dispute events.

Usage:
    from notifications.services import NotificationService

    NotificationService.notify(buyer, title="Payment Received", body="...")
"""
