"""
Guest-count pricing.

Resolves the hourly base price of a service for a party size. Per-table
services charge a flat rate; per-guest services pick the smallest tier
that still seats the whole party.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from pricing.core.discount_config import to_float

PER_TABLE_SERVICES = ("PC Gaming", "Billiards")

# (max_guests, price)
GuestTier = Tuple[int, float]


def is_per_table_service(service_type: Optional[str]) -> bool:
    return bool(service_type) and service_type in PER_TABLE_SERVICES


def _parse_tiers(rules: Optional[Iterable[Any]]) -> List[GuestTier]:
    """
    Parse stored {maxGuests, price} rules, skipping malformed entries.

    A fractional maxGuests is floored to the largest whole party it seats,
    the counterpart of group discounts rounding minGuests up. Sorted by
    (max_guests, price) so equal capacities resolve to the cheaper tier.
    """
    tiers: List[GuestTier] = []
    if not isinstance(rules, (list, tuple)):
        return tiers
    for rule in rules:
        if not isinstance(rule, Mapping):
            continue
        max_guests = to_float(rule.get("maxGuests"))
        price = to_float(rule.get("price"))
        if max_guests is None or price is None or max_guests < 1 or price < 0:
            continue
        tiers.append((int(math.floor(max_guests)), price))
    tiers.sort()
    return tiers


def resolve_guest_price(
    service_type: Optional[str],
    base_price_per_unit: float,
    guest_pricing_rules: Optional[Iterable[Any]],
    guest_count: int,
) -> Optional[float]:
    """
    Base price for one booking unit (one table, one hour).

    Returns None when the service has tiers but none accommodates
    guest_count; callers must not substitute another tier's price.
    """
    if is_per_table_service(service_type):
        return float(base_price_per_unit)

    tiers = _parse_tiers(guest_pricing_rules)
    if not tiers:
        # Legacy flat per-guest rate
        return float(base_price_per_unit) * guest_count

    for max_guests, price in tiers:
        if guest_count <= max_guests:
            return price
    return None


def get_max_guest_count(guest_pricing_rules: Optional[Iterable[Any]]) -> Optional[int]:
    """Largest party the tiers accommodate, or None when unlimited (no tiers)."""
    tiers = _parse_tiers(guest_pricing_rules)
    if not tiers:
        return None
    return tiers[-1][0]


def is_valid_guest_count(
    service_type: Optional[str],
    base_price_per_unit: float,
    guest_pricing_rules: Optional[Iterable[Any]],
    guest_count: int,
) -> bool:
    return (
        resolve_guest_price(service_type, base_price_per_unit, guest_pricing_rules, guest_count)
        is not None
    )


def lowest_rule_price(guest_pricing_rules: Optional[Iterable[Any]]) -> Optional[float]:
    """The "from" price shown on listings; None when the service has no tiers."""
    tiers = _parse_tiers(guest_pricing_rules)
    if not tiers:
        return None
    return min(price for _, price in tiers)
