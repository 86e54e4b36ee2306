"""
Payment adapters for external services.

All payment provider calls go through these adapters so error handling,
timeouts, idempotency and logging stay consistent.

Usage:
    from payments.adapters import StripeAdapter, CreateEscrowChargeParams

    result = StripeAdapter.create_escrow_charge(
        CreateEscrowChargeParams(
            amount=Decimal("1300.00"),
            currency="pkr",
            customer_id="cus_123",
            destination_account="acct_123",
            idempotency_key="hold:order_123:seller_7:1:ab12cd34",
        )
    )
"""

from payments.adapters.stripe_adapter import (
    ZERO_DECIMAL_CURRENCIES,
    AccountResult,
    CreateEscrowChargeParams,
    CustomerResult,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    ReversalResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
    from_minor_units,
    is_retryable_stripe_error,
    to_minor_units,
)

__all__ = [
    "ZERO_DECIMAL_CURRENCIES",
    "AccountResult",
    "CreateEscrowChargeParams",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "ReversalResult",
    "StripeAdapter",
    "TransferResult",
    "backoff_delay",
    "from_minor_units",
    "is_retryable_stripe_error",
    "to_minor_units",
]
