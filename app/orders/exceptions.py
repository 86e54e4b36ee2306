"""
Order and escrow exceptions.

Exception Hierarchy:
    ValidationError (core)
    ├── EmptyCartError
    ├── InsufficientStockError
    └── InvalidTierError
    ConflictError (core)
    ├── SellerNotPayableError
    ├── PaymentNotProcessableError
    ├── InvalidStateTransitionError
    └── EscrowStateError
    PermissionDeniedError (core)
    └── OrderAccessDeniedError
    NotFoundError (core)
    └── OrderNotFoundError

Assembly errors are raised before any gateway call, so the caller can
fix the cart and retry without side effects.
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError


class EmptyCartError(ValidationError):
    default_error_code: str = "EMPTY_CART"


class InsufficientStockError(ValidationError):
    """
    Requested quantity exceeds live stock.

    ``details`` carries product_id, requested and available.
    """

    default_error_code: str = "INSUFFICIENT_STOCK"


class InvalidTierError(ValidationError):
    """Cart line points at a price tier the product does not have."""

    default_error_code: str = "INVALID_TIER"


class SellerNotPayableError(ConflictError):
    """Seller has no payout account, or Stripe reports payouts disabled."""

    default_error_code: str = "SELLER_NOT_PAYABLE"


class PaymentNotProcessableError(ConflictError):
    """A hold is in a gateway state that confirmation cannot drive forward."""

    default_error_code: str = "PAYMENT_NOT_PROCESSABLE"


class InvalidStateTransitionError(ConflictError):
    """A status change not allowed by its transition table."""

    default_error_code: str = "INVALID_STATE_TRANSITION"


class EscrowStateError(ConflictError):
    """
    Escrow operation not allowed in the order's current payment state.

    Raised for releasing a fully released order, releasing while disputed,
    disputing an order holding no money, and resolving without a dispute.
    """

    default_error_code: str = "INVALID_ESCROW_STATE"


class OrderAccessDeniedError(PermissionDeniedError):
    default_error_code: str = "ORDER_ACCESS_DENIED"


class OrderNotFoundError(NotFoundError):
    default_error_code: str = "ORDER_NOT_FOUND"
