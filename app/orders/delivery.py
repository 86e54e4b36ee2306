"""
Distance-based delivery charges.

Each product carries delivery tiers ``[{"min": 0, "max": 10, "price": 100}, ...]``
in kilometres. A seller ships all of an order's items in one shipment, so
the seller's delivery charge is the highest tier price among their items,
not a sum.

Tier selection for a distance ``d``:
    1. the tier whose range ``[min, max)`` contains ``d``
       (missing min means 0, missing max means unbounded)
    2. else the first tier, by min, whose max >= d
    3. else the tier whose boundary (max, or min when max is missing) is
       numerically closest to ``d``
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from typing import Any

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _bound(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def select_tier(tiers: Sequence[dict[str, Any]], distance_km: float) -> dict[str, Any] | None:
    """Pick the delivery tier for ``distance_km``; None when there are no tiers."""
    if not tiers:
        return None

    ordered = sorted(tiers, key=lambda t: _bound(t.get("min")) or 0.0)

    for tier in ordered:
        low = _bound(tier.get("min"))
        high = _bound(tier.get("max"))
        if (low is None or distance_km >= low) and (high is None or distance_km < high):
            return tier

    for tier in ordered:
        high = _bound(tier.get("max"))
        if high is not None and high >= distance_km:
            return tier

    def boundary_gap(tier: dict[str, Any]) -> float:
        high = _bound(tier.get("max"))
        low = _bound(tier.get("min"))
        boundary = high if high is not None else (low if low is not None else 0.0)
        return abs(distance_km - boundary)

    return min(ordered, key=boundary_gap)


def tier_price(tier: dict[str, Any] | None) -> Decimal:
    if not tier:
        return Decimal("0")
    try:
        return Decimal(str(tier.get("price") or 0))
    except InvalidOperation:
        return Decimal("0")


def seller_delivery_charge(
    tier_lists: Iterable[Sequence[dict[str, Any]]],
    distance_km: float,
) -> Decimal:
    """
    Delivery charge for one seller's shipment.

    ``tier_lists`` holds one delivery tier list per item; items without
    tiers contribute nothing.
    """
    charge = Decimal("0")
    for tiers in tier_lists:
        price = tier_price(select_tier(tiers, distance_km))
        if price > charge:
            charge = price
    return charge
