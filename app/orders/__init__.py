"""
Orders app: multi-seller orders with per-seller escrow.

Checkout creates one manual-capture hold per seller; funds sit in the
platform balance until the hold period ends, a buyer or admin releases
them, or a dispute is resolved.

Usage:
    from orders.services import OrderAssemblyService, EscrowReleaseService
"""
