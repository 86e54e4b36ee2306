"""
Factory Boy factories for order models.

Factories write statuses directly; tests that need a derived status call
``order.recompute_status()`` after building the ledger.

Usage:
    from orders.tests.factories import OrderFactory, TransferRecordFactory

    order = OrderFactory(payment_status=PaymentStatus.HELD_IN_ESCROW)
    TransferRecordFactory(order=order, status=TransferStatus.COMPLETED)
"""

from datetime import timedelta
from decimal import Decimal

import factory
from django.utils import timezone

from authentication.tests.factories import SellerFactory, UserFactory
from orders.models import Order, OrderItem, SellerOrder, TransferRecord
from orders.state_machines import SellerOrderStatus, TransferStatus


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order

    buyer = factory.SubFactory(UserFactory)
    total_amount = Decimal("1300.00")
    currency = "pkr"
    shipping_address = factory.LazyFunction(lambda: {"area": "Gulberg", "city": "Lahore"})
    release_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=14))


class SellerOrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SellerOrder

    order = factory.SubFactory(OrderFactory)
    seller = factory.SubFactory(SellerFactory)
    subtotal = Decimal("1000.00")
    delivery_charge = Decimal("0.00")
    status = SellerOrderStatus.PENDING


class TransferRecordFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = TransferRecord

    order = factory.SubFactory(OrderFactory)
    seller = factory.SubFactory(SellerFactory)
    payment_intent_id = factory.Sequence(lambda n: f"pi_test_{n}")
    transfer_id = factory.LazyAttribute(lambda o: o.payment_intent_id)
    amount = Decimal("1000.00")
    currency = "pkr"
    status = TransferStatus.PENDING


class OrderItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderItem

    order = factory.SubFactory(OrderFactory)
    seller_order = factory.SubFactory(
        SellerOrderFactory,
        order=factory.SelfAttribute("..order"),
        seller=factory.SelfAttribute("..seller"),
    )
    seller = factory.SubFactory(SellerFactory)
    product = None
    product_name = factory.Sequence(lambda n: f"Product {n}")
    quantity = 1
    unit_price = Decimal("500.00")
    line_total = factory.LazyAttribute(lambda o: o.unit_price * o.quantity)
