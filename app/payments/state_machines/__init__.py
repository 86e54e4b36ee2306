"""Status enums for payment models."""

from payments.state_machines.states import WebhookEventStatus

__all__ = [
    "WebhookEventStatus",
]
