"""
Stripe webhook endpoint.

The view only authenticates and stores the event; the escrow ledger is
updated by ``payments.tasks.process_webhook_event``. Stripe treats any
non-2xx answer as a reason to redeliver, so everything except a bad
signature is acknowledged with 200.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import InvalidSignatureError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive, verify, store and queue one Stripe event.

    Returns:
        HttpResponse with status:
        - 200: Event accepted, duplicate, or not processable (acknowledged)
        - 400: Missing or invalid signature
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except InvalidSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing id or type, acknowledging")
        return HttpResponse("Ignored", status=200)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Already processed", status=200)

    from payments.tasks import process_webhook_event

    try:
        process_webhook_event.delay(str(webhook_event.id))
    except Exception as e:
        # Failed events are re-queued by retry_failed_webhooks
        logger.exception(
            "Failed to queue webhook",
            extra={"stripe_event_id": stripe_event_id},
        )
        webhook_event.mark_failed(f"Queueing failed: {type(e).__name__}")
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        return HttpResponse("Accepted", status=200)

    logger.info(
        "Webhook queued for processing",
        extra={
            "stripe_event_id": stripe_event_id,
            "webhook_event_id": str(webhook_event.id),
        },
    )
    return HttpResponse("Accepted", status=200)
