"""
Order and escrow services.

Services:
    OrderAssemblyService: Cart -> order with per-seller escrow holds
    PaymentReconciliationService: Gateway outcomes -> ledger entries
    EscrowReleaseService: Sweep and manual payouts to sellers
    DisputeService: Raise and resolve disputes
    EscrowLedgerService: Single-entry release and refund
    OrderService: Queries, cancellation, seller fulfilment
"""

from orders.services.assembly import AssemblyResult, Hold, OrderAssemblyService
from orders.services.disputes import DisputeService, ResolutionResult
from orders.services.fulfillment import OrderService
from orders.services.ledger import EntryResult, EscrowLedgerService
from orders.services.reconciliation import ConfirmationResult, PaymentReconciliationService
from orders.services.release import EscrowReleaseService, ReleaseSummary

__all__ = [
    "AssemblyResult",
    "ConfirmationResult",
    "DisputeService",
    "EntryResult",
    "EscrowLedgerService",
    "EscrowReleaseService",
    "Hold",
    "OrderAssemblyService",
    "OrderService",
    "PaymentReconciliationService",
    "ReleaseSummary",
    "ResolutionResult",
]
