"""
Discounted-price calculation for a single service booking.

Four mechanisms are applied in a fixed order, each on the running price
left by the previous one:

  1. overall discount     flat percentage off
  2. free hours           "pay N get M free" blocks repeating over the booking
  3. group discount       best percentage among the tiers the party qualifies for
  4. timeslot discount    percentage prorated by overlap with a time-of-day window

The calculation is a pure function of its inputs; the same result shape is
consumed by the booking-form preview and by checkout for the persisted total.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pricing.core.discount_config import (
    DiscountConfig,
    FreeHourRule,
    TimeslotRule,
    normalize_time,
    resolve_discount_config,
    time_to_hours,
)
from pricing.core.errors import InvalidPricingRequest

logger = logging.getLogger(__name__)

OVERALL_DISCOUNT = "Overall Discount"
FREE_HOURS = "Free Hours"
GROUP_DISCOUNT = "Group Discount"
TIMESLOT_DISCOUNT = "Timeslot Discount"


@dataclass(frozen=True)
class DiscountCalculationResult:
    original_price: float
    final_price: float
    total_savings: float
    paid_hours: float
    applied_discounts: Tuple[str, ...] = ()
    discount_breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalPrice": self.original_price,
            "finalPrice": self.final_price,
            "totalSavings": self.total_savings,
            "appliedDiscounts": list(self.applied_discounts),
            "discountBreakdown": dict(self.discount_breakdown),
            "paidHours": self.paid_hours,
        }


def round_money(value: float) -> float:
    """Round half-up to 2 decimals (cents), matching the frontend's Math.round."""
    return math.floor(value * 100 + 0.5) / 100


def _require_positive(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidPricingRequest(f"{name} must be a number, got {value!r}")
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise InvalidPricingRequest(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(out) or out <= 0:
        raise InvalidPricingRequest(f"{name} must be greater than 0, got {value!r}")
    return out


def compute_charged_hours(duration_hours: float, rule: FreeHourRule) -> float:
    """
    Hours charged under a free-hour rule.

    Each complete block of threshold + free hours charges only the
    threshold; the trailing partial block is charged in full.
    """
    block_size = rule.block_size
    complete_blocks = math.floor(duration_hours / block_size)
    remainder = duration_hours % block_size
    return complete_blocks * rule.threshold_hours + remainder


def compute_overlap_hours(
    booking_start: str,
    booking_end: str,
    rule: TimeslotRule,
) -> float:
    """Hours the booking window shares with the rule's window (0 if none)."""
    # Zero-padded "HH:MM" strings on the same day compare correctly as text.
    overlap_start = max(booking_start, rule.start)
    overlap_end = min(booking_end, rule.end)
    if overlap_start >= overlap_end:
        return 0.0
    return time_to_hours(overlap_end) - time_to_hours(overlap_start)


def calculate_discount(
    base_price: float,
    duration_hours: float,
    guest_count: int,
    discount_config: Union[DiscountConfig, Mapping[str, Any], None],
    booking_start_time: Optional[str] = None,
    booking_end_time: Optional[str] = None,
    service_id: Optional[str] = None,
) -> DiscountCalculationResult:
    """
    Apply the service's discounts to a booking's base price.

    base_price is the pre-discount total for the whole duration. Raises
    InvalidPricingRequest when base_price or duration_hours is not
    positive; malformed discount configuration never raises and simply
    contributes nothing.
    """
    original_price = _require_positive("base_price", base_price)
    duration = _require_positive("duration_hours", duration_hours)
    config = (
        discount_config
        if isinstance(discount_config, DiscountConfig)
        else resolve_discount_config(discount_config)
    )
    guests = guest_count if isinstance(guest_count, (int, float)) else 0

    price = original_price
    paid_hours = duration
    applied: List[str] = []
    breakdown: Dict[str, float] = {}

    # 1. Overall discount
    overall_pct = config.overall_discount_percent
    if overall_pct > 0:
        price *= 1 - overall_pct / 100
        applied.append(OVERALL_DISCOUNT)
        breakdown["overallDiscount"] = overall_pct

    # 2. Free hours: first rule that covers this service and fits at least one block
    for rule in config.free_hour_discounts:
        if not rule.applies_to(service_id) or duration < rule.block_size:
            continue
        charged = compute_charged_hours(duration, rule)
        if charged < duration:
            paid_hours = charged
            price *= charged / duration
            applied.append(FREE_HOURS)
            breakdown["freeHours"] = duration - charged
            logger.debug(
                "Free hours applied: charged=%s of %s (rule %s+%s)",
                charged, duration, rule.threshold_hours, rule.free_hours,
            )
            break

    # 3. Group discount: max over every tier the party qualifies for
    group_pct = 0.0
    for rule in config.group_discounts:
        if guests >= rule.min_guests:
            group_pct = max(group_pct, rule.discount_percent)
    if group_pct > 0:
        price *= 1 - group_pct / 100
        applied.append(GROUP_DISCOUNT)
        breakdown["groupDiscount"] = group_pct

    # 4. Timeslot discount, prorated by overlap; first overlapping rule only
    start = normalize_time(booking_start_time)
    end = normalize_time(booking_end_time)
    if start and end:
        for rule in config.timeslot_discounts:
            overlap = compute_overlap_hours(start, end, rule)
            if overlap <= 0:
                continue
            if rule.discount_percent <= 0:
                # A matching 0% window still ends the search.
                break
            price -= price * (overlap / duration) * (rule.discount_percent / 100)
            applied.append(TIMESLOT_DISCOUNT)
            breakdown["timeslotDiscount"] = rule.discount_percent
            logger.debug(
                "Timeslot discount applied: %.2fh overlap at %s%%",
                overlap, rule.discount_percent,
            )
            break
    elif booking_start_time or booking_end_time:
        logger.debug(
            "Skipping timeslot discounts: incomplete or invalid window %r-%r",
            booking_start_time, booking_end_time,
        )

    final_price = min(original_price, max(0.0, round_money(price)))

    return DiscountCalculationResult(
        original_price=original_price,
        final_price=final_price,
        total_savings=round_money(original_price - final_price),
        paid_hours=paid_hours,
        applied_discounts=tuple(applied),
        discount_breakdown=breakdown,
    )
