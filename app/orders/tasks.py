"""
Celery tasks for the escrow release sweep.

- process_escrow_releases: find due orders and queue one release per order
  (celery-beat, daily at 01:00 UTC)
- release_order_escrow: release one order under its Redis lock

Usage:
    from orders.tasks import release_order_escrow

    release_order_escrow.delay(str(order.id))
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.db import OperationalError

from orders.services.release import EscrowReleaseService
from payments.adapters import backoff_delay
from payments.exceptions import LockAcquisitionError
from payments.locks import order_lock

logger = logging.getLogger(__name__)


@shared_task
def process_escrow_releases() -> dict:
    """Queue a release for every order whose hold period has passed."""
    order_ids = [str(order_id) for order_id in EscrowReleaseService.due_orders().values_list("id", flat=True)]

    for order_id in order_ids:
        release_order_escrow.delay(order_id)

    logger.info(f"Queued {len(order_ids)} orders for escrow release", extra={"count": len(order_ids)})
    return {"queued": len(order_ids)}


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def release_order_escrow(self, order_id: str) -> dict:
    """
    Release one due order.

    Per-seller payout failures are part of the returned summary. Transient
    gateway errors (rate limits, connection problems) retry the task with
    exponential backoff; anything else waits for the next daily sweep.
    """
    try:
        with order_lock(order_id):
            summary = EscrowReleaseService.release_due_order(order_id)
    except LockAcquisitionError:
        logger.info(
            f"Order {order_id} is being released elsewhere, skipping",
            extra={"order_id": order_id},
        )
        return {"order_id": order_id, "status": "locked"}

    if not summary.all_succeeded:
        logger.warning(
            f"Escrow release incomplete for order {order_id}",
            extra={"order_id": order_id, "released_count": summary.released_count},
        )
        if summary.retryable and self.request.retries < self.max_retries:
            raise self.retry(countdown=backoff_delay(self.request.retries))
    return {"status": "done", **summary.to_dict()}
