"""
Webhook event handlers for Stripe events.

A registry maps event types to handlers. Each escrow handler extracts the
event's object and hands it to ``PaymentReconciliationService``, which
locates the matching ledger entry and applies the event to it.

Unmatched ids, already-terminal entries and unknown event types all return
success so Stripe stops redelivering. Only unexpected exceptions fail the
event, which is then retried.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult
from orders.services.reconciliation import PaymentReconciliationService
from payments.models import WebhookEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================

WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator registering a handler for one Stripe event type.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a stored event to its handler.

    Event types without a handler are acknowledged with ``success(None)``.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)


def _require_object(webhook_event: WebhookEvent) -> dict | None:
    obj = webhook_event.get_object()
    if not obj.get("id"):
        logger.warning(
            f"{webhook_event.event_type}: event has no object id, skipping",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return None
    return obj


def _skipped() -> ServiceResult:
    return ServiceResult.success({"applied": False, "reason": "missing_object"})


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.amount_capturable_updated")
def handle_payment_intent_authorized(webhook_event: WebhookEvent) -> ServiceResult:
    """Hold authorized and awaiting capture."""
    payment_intent = _require_object(webhook_event)
    if payment_intent is None:
        return _skipped()
    return PaymentReconciliationService.handle_payment_authorized(payment_intent)


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """Hold captured; money now sits in the platform balance."""
    payment_intent = _require_object(webhook_event)
    if payment_intent is None:
        return _skipped()
    return PaymentReconciliationService.handle_payment_succeeded(payment_intent)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    payment_intent = _require_object(webhook_event)
    if payment_intent is None:
        return _skipped()
    return PaymentReconciliationService.handle_payment_failed(payment_intent)


# =============================================================================
# Charge and Transfer Handlers
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """Matched on the charge's ``payment_intent``."""
    charge = _require_object(webhook_event)
    if charge is None:
        return _skipped()
    return PaymentReconciliationService.handle_charge_refunded(charge)


@register_handler("transfer.paid")
def handle_transfer_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """Seller payout landed in the connected account."""
    transfer = _require_object(webhook_event)
    if transfer is None:
        return _skipped()
    return PaymentReconciliationService.handle_transfer_paid(transfer)
