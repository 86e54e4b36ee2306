"""
Order assembly: turning a buyer's cart into an escrowed order.

Flow:
    1. Validate the cart (non-empty, stock, price tiers)
    2. Group lines by seller and price each seller's delivery
    3. Check every seller can receive payouts
    4. Ensure the buyer has a Stripe customer
    5. In one transaction: persist the order, create one manual-capture hold
       and one pending ledger entry per seller, clear the cart

Steps 1-4 make no writes to the order tables, and step 3 runs before any
hold exists, so a rejected checkout leaves nothing to clean up. A gateway
failure in step 5 cancels the holds created so far and rolls the order back.

Usage:
    result = OrderAssemblyService.create_order(
        buyer,
        shipping_address={"area": "Gulberg", "city": "Lahore"},
        contact_info={"phone": "+92300..."},
    )
    result.order, result.holds, result.client_secret
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from catalog.services import CartService
from core.services import BaseService
from orders import messages
from orders.delivery import haversine_km, seller_delivery_charge
from orders.exceptions import EmptyCartError, InsufficientStockError, InvalidTierError, SellerNotPayableError
from orders.geocoding import GeoPoint, geocode_address
from orders.models import Order, OrderItem, SellerOrder, SellerOrderStatusChange, TransferRecord
from orders.state_machines import PaymentMethod, SellerOrderStatus, TransferStatus
from payments.adapters import CreateEscrowChargeParams, IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import PaymentGatewayError

if TYPE_CHECKING:
    from typing import Any

    from authentication.models import Address, User
    from catalog.models import CartItem, Product

logger = logging.getLogger(__name__)


@dataclass
class _Line:
    cart_item: CartItem
    product: Product
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.cart_item.quantity


@dataclass
class _SellerShare:
    seller: User
    lines: list[_Line] = field(default_factory=list)
    delivery_charge: Decimal = Decimal("0")
    distance_km: float | None = None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.delivery_charge


@dataclass
class Hold:
    seller_id: int
    payment_intent_id: str
    client_secret: str | None


@dataclass
class AssemblyResult:
    order: Order
    holds: list[Hold]

    @property
    def client_secret(self) -> str | None:
        return self.holds[0].client_secret if self.holds else None


class OrderAssemblyService(BaseService):
    """
    Methods:
        create_order: Cart -> order, per-seller holds and ledger entries
    """

    @classmethod
    def create_order(
        cls,
        buyer: User,
        shipping_address: dict[str, Any],
        contact_info: dict[str, Any] | None = None,
        payment_method: str = PaymentMethod.CARD,
        delivery_notes: str = "",
    ) -> AssemblyResult:
        """
        Raises:
            EmptyCartError: Nothing in the cart
            InsufficientStockError: A line asks for more than is in stock
            InvalidTierError: A line points at a missing price tier
            SellerNotPayableError: A seller has no payout account
            PaymentGatewayError: Stripe rejected a hold; no order is kept
        """
        log = cls.get_logger()

        lines = cls._price_lines(CartService.get_items(buyer))
        shares = cls._group_by_seller(lines)

        shipping_snapshot = dict(shipping_address or {})
        buyer_point = cls._resolve_buyer_point(buyer, shipping_snapshot)
        if buyer_point is not None:
            shipping_snapshot["latitude"] = buyer_point.latitude
            shipping_snapshot["longitude"] = buyer_point.longitude
        cls._price_delivery(shares, buyer_point)

        cls._check_sellers_payable(shares)
        customer_id = cls._ensure_customer(buyer)

        total = sum((share.total for share in shares), Decimal("0"))
        currency = settings.ESCROW_CURRENCY
        created_holds: list[Hold] = []

        try:
            with transaction.atomic():
                order = Order.objects.create(
                    buyer=buyer,
                    total_amount=total,
                    currency=currency,
                    payment_method=payment_method,
                    shipping_address=shipping_snapshot,
                    contact_info=contact_info or {},
                    delivery_notes=delivery_notes or "",
                    release_date=timezone.now() + timedelta(days=settings.ESCROW_HOLD_DAYS),
                )

                for share in shares:
                    cls._persist_share(order, share, buyer)
                    hold = cls._create_hold(order, share, customer_id, currency)
                    created_holds.append(hold)
                    TransferRecord.objects.create(
                        order=order,
                        seller=share.seller,
                        transfer_id=hold.payment_intent_id,
                        payment_intent_id=hold.payment_intent_id,
                        amount=share.total,
                        currency=currency,
                        status=TransferStatus.PENDING,
                        metadata={"hold_id": hold.payment_intent_id},
                    )

                CartService.clear_cart(buyer)
                messages.order_placed(order)
        except Exception:
            if created_holds:
                cls._void_holds(created_holds)
            raise

        log.info(
            f"Order {order.id} created for buyer {buyer.pk}",
            extra={
                "order_id": str(order.id),
                "total_amount": str(total),
                "sellers": len(shares),
            },
        )
        return AssemblyResult(order=order, holds=created_holds)

    # =========================================================================
    # Cart validation and pricing
    # =========================================================================

    @classmethod
    def _price_lines(cls, cart_items: list[CartItem]) -> list[_Line]:
        if not cart_items:
            raise EmptyCartError("Cart is empty")

        lines = []
        for item in cart_items:
            product = item.product
            if item.quantity > product.stock:
                raise InsufficientStockError(
                    f"Only {product.stock} of '{product.name}' in stock",
                    details={
                        "product_id": str(product.id),
                        "requested": item.quantity,
                        "available": product.stock,
                    },
                )
            unit_price = product.tier_price(item.selected_tier)
            if unit_price is None:
                raise InvalidTierError(
                    f"Price tier {item.selected_tier} does not exist for '{product.name}'",
                    details={"product_id": str(product.id), "selected_tier": item.selected_tier},
                )
            if unit_price <= 0:
                raise InvalidTierError(
                    f"Price tier {item.selected_tier} of '{product.name}' has no price",
                    details={
                        "product_id": str(product.id),
                        "selected_tier": item.selected_tier,
                        "unit_price": str(unit_price),
                    },
                )
            lines.append(_Line(cart_item=item, product=product, unit_price=unit_price))
        return lines

    @staticmethod
    def _group_by_seller(lines: list[_Line]) -> list[_SellerShare]:
        shares: dict[int, _SellerShare] = {}
        for line in lines:
            seller = line.product.seller
            shares.setdefault(seller.pk, _SellerShare(seller=seller)).lines.append(line)
        return list(shares.values())

    # =========================================================================
    # Delivery
    # =========================================================================

    @classmethod
    def _resolve_buyer_point(cls, buyer: User, shipping: dict[str, Any]) -> GeoPoint | None:
        """Coordinates from the request, a saved address, or the geocoder."""
        lat, lng = shipping.get("latitude"), shipping.get("longitude")
        if lat not in (None, "") and lng not in (None, ""):
            try:
                return GeoPoint(float(lat), float(lng))
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed shipping coordinates", extra={"buyer_id": buyer.pk})

        address_id = shipping.get("address_id")
        if address_id:
            address = buyer.addresses.filter(pk=address_id).first()
            if address is not None:
                return cls._address_point(address)

        return geocode_address(shipping)

    @staticmethod
    def _address_point(address: Address) -> GeoPoint | None:
        """Cached coordinates, geocoding and caching them on first use."""
        if address.has_coordinates:
            return GeoPoint(address.latitude, address.longitude)

        point = geocode_address(address.as_dict())
        if point is not None:
            address.latitude = point.latitude
            address.longitude = point.longitude
            address.save(update_fields=["latitude", "longitude", "updated_at"])
        return point

    @classmethod
    def _price_delivery(cls, shares: list[_SellerShare], buyer_point: GeoPoint | None) -> None:
        if buyer_point is None:
            logger.info("Buyer location unknown, delivery charges skipped")
            return

        for share in shares:
            address = share.seller.default_address
            seller_point = cls._address_point(address) if address is not None else None
            if seller_point is None:
                logger.info(
                    f"Seller {share.seller.pk} location unknown, no delivery charge",
                    extra={"seller_id": share.seller.pk},
                )
                continue

            distance = haversine_km(
                buyer_point.latitude,
                buyer_point.longitude,
                seller_point.latitude,
                seller_point.longitude,
            )
            share.distance_km = round(distance, 3)
            share.delivery_charge = seller_delivery_charge(
                (line.product.delivery_tiers or [] for line in share.lines),
                distance,
            )

    # =========================================================================
    # Gateway
    # =========================================================================

    @staticmethod
    def _check_sellers_payable(shares: list[_SellerShare]) -> None:
        missing = [share.seller.pk for share in shares if not share.seller.stripe_account_id]
        if missing:
            raise SellerNotPayableError(
                "One or more sellers cannot receive payments yet",
                details={"seller_ids": missing},
            )

    @classmethod
    def _ensure_customer(cls, buyer: User) -> str:
        if buyer.stripe_customer_id:
            return buyer.stripe_customer_id

        customer = StripeAdapter.create_customer(
            email=buyer.email,
            name=buyer.get_full_name(),
            metadata={"user_id": str(buyer.pk)},
            idempotency_key=IdempotencyKeyGenerator.generate("customer", buyer.pk),
        )
        buyer.stripe_customer_id = customer.id
        buyer.save(update_fields=["stripe_customer_id"])
        return customer.id

    @classmethod
    def _create_hold(cls, order: Order, share: _SellerShare, customer_id: str, currency: str) -> Hold:
        intent = StripeAdapter.create_escrow_charge(
            CreateEscrowChargeParams(
                amount=share.total,
                currency=currency,
                customer_id=customer_id,
                destination_account=share.seller.stripe_account_id,
                idempotency_key=IdempotencyKeyGenerator.generate("hold", f"{order.id}:{share.seller.pk}"),
                metadata={
                    "order_id": str(order.id),
                    "seller_id": str(share.seller.pk),
                    "buyer_id": str(order.buyer_id),
                },
                transfer_group=order.transfer_group,
            )
        )
        return Hold(
            seller_id=share.seller.pk,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
        )

    @classmethod
    def _void_holds(cls, holds: list[Hold]) -> None:
        """Best-effort cancel of holds whose order is being rolled back."""
        for hold in holds:
            try:
                StripeAdapter.refund_or_cancel(
                    hold.payment_intent_id,
                    idempotency_key=IdempotencyKeyGenerator.generate("void", hold.payment_intent_id),
                )
            except PaymentGatewayError:
                logger.exception(
                    f"Could not cancel orphaned hold {hold.payment_intent_id}",
                    extra={"payment_intent_id": hold.payment_intent_id, "seller_id": hold.seller_id},
                )

    # =========================================================================
    # Persistence
    # =========================================================================

    @staticmethod
    def _persist_share(order: Order, share: _SellerShare, buyer: User) -> SellerOrder:
        seller_order = SellerOrder.objects.create(
            order=order,
            seller=share.seller,
            subtotal=share.subtotal,
            delivery_charge=share.delivery_charge,
            distance_km=share.distance_km,
        )
        SellerOrderStatusChange.objects.create(
            seller_order=seller_order,
            status=SellerOrderStatus.PENDING,
            changed_by=buyer,
            notes="Order placed",
        )
        OrderItem.objects.bulk_create(
            OrderItem(
                order=order,
                seller_order=seller_order,
                product=line.product,
                product_name=line.product.name,
                seller=share.seller,
                quantity=line.cart_item.quantity,
                selected_tier=line.cart_item.selected_tier,
                unit_price=line.unit_price,
                line_total=line.line_total,
            )
            for line in share.lines
        )
        return seller_order
