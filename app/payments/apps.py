"""
Payments app configuration.

Stripe gateway adapter, webhook ingestion and the Redis locks used by the
escrow release flow.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
