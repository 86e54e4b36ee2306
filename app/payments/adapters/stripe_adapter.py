"""
Stripe API adapter for escrow payments.

Every Stripe call made by the marketplace goes through ``StripeAdapter`` so
that timeouts, idempotency keys, logging and error translation are handled
in one place.

Escrow model:
    - One manual-capture PaymentIntent ("hold") per seller per order, tagged
      with the order's transfer group.
    - Release = capture if still uncaptured, then a Transfer from the
      platform balance to the seller's connected account, sourced from the
      hold's charge.
    - Refund = cancel an uncaptured hold, or refund a captured one.

Money crosses this boundary in minor units. ``to_minor_units`` and
``from_minor_units`` are the only conversions and consult
``ZERO_DECIMAL_CURRENCIES``.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK-level network retries (default: 3)

Usage:
    from payments.adapters import StripeAdapter, CreateEscrowChargeParams

    result = StripeAdapter.create_escrow_charge(
        CreateEscrowChargeParams(
            amount=Decimal("1300.00"),
            currency="pkr",
            customer_id=buyer.stripe_customer_id,
            destination_account=seller.stripe_account_id,
            transfer_group=f"ORDER_{order.id}",
            metadata={"order_id": str(order.id), "seller_id": str(seller.id)},
            idempotency_key=IdempotencyKeyGenerator.generate("hold", f"{order.id}:{seller.id}"),
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypeVar

import stripe
from django.conf import settings

from payments.exceptions import (
    InvalidSignatureError,
    PaymentGatewayError,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

R = TypeVar("R")

# =============================================================================
# Currency Units
# =============================================================================

# Currencies whose smallest unit is the major unit (no x100 conversion)
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif",
        "clp",
        "djf",
        "gnf",
        "jpy",
        "kmf",
        "krw",
        "mga",
        "pyg",
        "rwf",
        "ugx",
        "vnd",
        "vuv",
        "xaf",
        "xof",
        "xpf",
    }
)


def is_zero_decimal(currency: str) -> bool:
    return currency.lower() in ZERO_DECIMAL_CURRENCIES


def to_minor_units(amount: Decimal | int | float | str, currency: str) -> int:
    """
    Convert a major-unit amount to the provider's integer minor units.

    Examples:
        to_minor_units(Decimal("12.34"), "usd") -> 1234
        to_minor_units(Decimal("500"), "jpy")   -> 500
    """
    value = Decimal(str(amount))
    if not is_zero_decimal(currency):
        value = value * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> Decimal:
    """Inverse of ``to_minor_units``."""
    if is_zero_decimal(currency):
        return Decimal(amount)
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateEscrowChargeParams:
    """
    Parameters for creating a held (manual-capture) charge.

    Attributes:
        amount: Major-unit amount (converted to minor units by the adapter)
        currency: ISO 4217 currency code
        customer_id: Stripe Customer to charge
        destination_account: Seller's connected account (recorded in metadata)
        idempotency_key: Unique key for idempotent creation
        metadata: Key-value pairs attached to the PaymentIntent
        transfer_group: Groups the hold with its later payout transfer
        payment_method_types: Allowed payment methods (default: ['card'])
    """

    amount: Decimal
    currency: str
    customer_id: str
    destination_account: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    transfer_group: str | None = None
    payment_method_types: list[str] = field(default_factory=lambda: ["card"])

    def __post_init__(self) -> None:
        if Decimal(str(self.amount)) <= 0:
            raise ValueError("amount must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")
        if not self.destination_account:
            raise ValueError("destination_account is required")


@dataclass
class CustomerResult:
    id: str
    email: str | None = None


@dataclass
class PaymentIntentResult:
    """
    Result from PaymentIntent operations.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: requires_payment_method, requires_capture, processing, succeeded, ...
        amount_minor: Amount in minor units
        currency: Currency code
        client_secret: Secret for client-side confirmation
        latest_charge: Charge ID once the intent has been confirmed
        metadata: Attached metadata
    """

    id: str
    status: str
    amount_minor: int
    currency: str
    client_secret: str | None = None
    latest_charge: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def requires_capture(self) -> bool:
        return self.status == "requires_capture"

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass
class TransferResult:
    id: str
    amount_minor: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class AccountResult:
    """Connected account payout readiness."""

    id: str
    charges_enabled: bool
    payouts_enabled: bool

    @property
    def is_payable(self) -> bool:
        return self.payouts_enabled


@dataclass
class ReversalResult:
    """
    Outcome of ``refund_or_cancel``.

    Attributes:
        payment_intent_id: The hold that was reversed
        action: "canceled", "refunded" or "already_canceled"
        refund_id: Refund ID when a captured charge was refunded
        refund_status: Refund status (succeeded, pending, ...)
        amount_minor: Amount reversed in minor units
    """

    payment_intent_id: str
    action: str
    refund_id: str | None = None
    refund_status: str | None = None
    amount_minor: int = 0


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Keys are deterministic, so a retried release of the same ledger entry
    reuses the same key and Stripe returns the original transfer.

    Example:
        key = IdempotencyKeyGenerator.generate("transfer", entry.id)
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """True for transient gateway errors a Celery task may retry."""
    if isinstance(error, PaymentGatewayError):
        return error.is_retryable
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Exponential backoff delay with 0-25% jitter.

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================

# PaymentIntent states in which an uncaptured hold can still be voided
CANCELABLE_STATUSES = frozenset(
    {
        "requires_payment_method",
        "requires_confirmation",
        "requires_action",
        "requires_capture",
        "processing",
    }
)


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods; no instance state is kept. Safe to call
    from request handlers and Celery workers.

    Every call is logged as "Starting Stripe operation" / "Stripe operation
    completed" with ``duration_ms``, and every SDK error is re-raised as a
    ``PaymentGatewayError`` subclass.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and network retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _execute(
        cls,
        log_context: dict[str, Any],
        call: Callable[[], R],
        result_context: Callable[[R], dict[str, Any]] | None = None,
    ) -> R:
        """
        Run one Stripe call with timing, structured logging and error mapping.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            response = call()
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        extra = dict(result_context(response)) if result_context else {}
        logger.info(
            "Stripe operation completed",
            extra={**log_context, **extra, "duration_ms": duration_ms},
        )
        return response

    @staticmethod
    def _intent_result(intent: Any) -> PaymentIntentResult:
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_minor=intent.amount,
            currency=intent.currency,
            client_secret=getattr(intent, "client_secret", None),
            latest_charge=getattr(intent, "latest_charge", None),
            metadata=dict(getattr(intent, "metadata", None) or {}),
        )

    # =========================================================================
    # Customers and Accounts
    # =========================================================================

    @classmethod
    def create_customer(
        cls,
        email: str,
        name: str = "",
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> CustomerResult:
        """Create the Stripe Customer a buyer's holds are charged to."""
        log_context = {"operation": "create_customer", "idempotency_key": idempotency_key}

        customer = cls._execute(
            log_context,
            lambda: stripe.Customer.create(
                email=email,
                name=name or None,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
            lambda c: {"customer_id": c.id},
        )
        return CustomerResult(id=customer.id, email=getattr(customer, "email", None))

    @classmethod
    def retrieve_account(cls, account_id: str) -> AccountResult:
        """
        Fetch a connected account's live payout readiness.

        Raises:
            StripeInvalidAccountError: Account does not exist
        """
        log_context = {"operation": "retrieve_account", "account_id": account_id}

        account = cls._execute(
            log_context,
            lambda: stripe.Account.retrieve(account_id),
            lambda a: {
                "charges_enabled": a.charges_enabled,
                "payouts_enabled": a.payouts_enabled,
            },
        )
        return AccountResult(
            id=account.id,
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
        )

    # =========================================================================
    # Holds
    # =========================================================================

    @classmethod
    def create_escrow_charge(cls, params: CreateEscrowChargeParams) -> PaymentIntentResult:
        """
        Create a manual-capture PaymentIntent holding one seller's share.

        Returns:
            PaymentIntentResult carrying the hold id and client_secret

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        amount_minor = to_minor_units(params.amount, params.currency)
        log_context = {
            "operation": "create_escrow_charge",
            "amount_minor": amount_minor,
            "currency": params.currency,
            "destination_account": params.destination_account,
            "transfer_group": params.transfer_group,
            "idempotency_key": params.idempotency_key,
        }
        metadata = {
            **params.metadata,
            "is_escrow": "true",
            "seller_account": params.destination_account,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=params.currency,
                customer=params.customer_id,
                payment_method_types=params.payment_method_types,
                capture_method="manual",
                metadata=metadata,
                transfer_group=params.transfer_group,
                idempotency_key=params.idempotency_key,
            ),
            lambda i: {"payment_intent_id": i.id, "status": i.status},
        )
        return cls._intent_result(intent)

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id: str) -> PaymentIntentResult:
        log_context = {
            "operation": "retrieve_payment_intent",
            "payment_intent_id": payment_intent_id,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.retrieve(payment_intent_id),
            lambda i: {"status": i.status},
        )
        return cls._intent_result(intent)

    @classmethod
    def capture_payment_intent(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """
        Capture a held charge in full.

        Raises:
            StripeInvalidRequestError: PaymentIntent not capturable
        """
        log_context = {
            "operation": "capture_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                payment_intent_id,
                idempotency_key=idempotency_key,
            ),
            lambda i: {"status": i.status},
        )
        return cls._intent_result(intent)

    @classmethod
    def confirm_payment_intent(
        cls,
        payment_intent_id: str,
        payment_method_id: str,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """
        Confirm a hold off-session with a saved payment method.

        Raises:
            StripeCardDeclinedError: Card was declined
        """
        log_context = {
            "operation": "confirm_payment_intent",
            "payment_intent_id": payment_intent_id,
            "idempotency_key": idempotency_key,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.confirm(
                payment_intent_id,
                payment_method=payment_method_id,
                off_session=True,
                idempotency_key=idempotency_key,
            ),
            lambda i: {"status": i.status},
        )
        return cls._intent_result(intent)

    @classmethod
    def refund_or_cancel(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        reason: str = "requested_by_customer",
    ) -> ReversalResult:
        """
        Return a hold's money to the buyer.

        An uncaptured hold is canceled (the authorization is released); a
        captured one is refunded in full. An already canceled hold is a no-op.

        Raises:
            StripeInvalidRequestError: Hold is in a state that cannot be reversed
        """
        intent = cls.retrieve_payment_intent(payment_intent_id)

        if intent.status == "canceled":
            return ReversalResult(payment_intent_id=intent.id, action="already_canceled")

        if intent.status in CANCELABLE_STATUSES:
            log_context = {
                "operation": "cancel_payment_intent",
                "payment_intent_id": payment_intent_id,
                "idempotency_key": idempotency_key,
            }
            canceled = cls._execute(
                log_context,
                lambda: stripe.PaymentIntent.cancel(
                    payment_intent_id,
                    cancellation_reason="requested_by_customer",
                    idempotency_key=idempotency_key,
                ),
                lambda i: {"status": i.status},
            )
            return ReversalResult(
                payment_intent_id=canceled.id,
                action="canceled",
                amount_minor=canceled.amount,
            )

        if intent.status == "succeeded":
            log_context = {
                "operation": "create_refund",
                "payment_intent_id": payment_intent_id,
                "idempotency_key": idempotency_key,
                "reason": reason,
            }
            refund = cls._execute(
                log_context,
                lambda: stripe.Refund.create(
                    payment_intent=payment_intent_id,
                    reason=reason,
                    idempotency_key=idempotency_key,
                ),
                lambda r: {"refund_id": r.id, "status": r.status},
            )
            return ReversalResult(
                payment_intent_id=payment_intent_id,
                action="refunded",
                refund_id=refund.id,
                refund_status=refund.status,
                amount_minor=refund.amount,
            )

        raise StripeInvalidRequestError(
            f"PaymentIntent {payment_intent_id} cannot be refunded from status '{intent.status}'",
            stripe_code="payment_intent_unexpected_state",
        )

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_minor: int,
        destination_account: str,
        idempotency_key: str,
        currency: str,
        metadata: dict[str, str] | None = None,
        source_transaction: str | None = None,
        transfer_group: str | None = None,
    ) -> TransferResult:
        """
        Transfer funds from the platform balance to a connected account.

        ``source_transaction`` ties the transfer to the hold's charge so it
        can execute before the charge's funds settle.

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        log_context = {
            "operation": "create_transfer",
            "amount_minor": amount_minor,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }
        transfer_params: dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "destination": destination_account,
            "metadata": metadata or {},
        }
        if source_transaction:
            transfer_params["source_transaction"] = source_transaction
        if transfer_group:
            transfer_params["transfer_group"] = transfer_group

        transfer = cls._execute(
            log_context,
            lambda: stripe.Transfer.create(idempotency_key=idempotency_key, **transfer_params),
            lambda t: {"transfer_id": t.id},
        )
        return TransferResult(
            id=transfer.id,
            amount_minor=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(getattr(transfer, "metadata", None) or {}),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Returns:
            Parsed event data dict

        Raises:
            InvalidSignatureError: Missing secret, bad signature or unparsable payload
        """
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            raise InvalidSignatureError("Webhook secret is not configured")
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(
                "Invalid webhook signature",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise InvalidSignatureError(
                "Invalid webhook payload",
                details={"error": str(e)},
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to gateway exceptions.

        Always raises.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if error.param == "destination" or error.code == "account_invalid":
                raise StripeInvalidAccountError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                ) from error

            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
