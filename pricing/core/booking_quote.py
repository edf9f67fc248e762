"""
Service booking quotes.

Turns a venue_services row plus a booking window and table layout into
the engine input (base price for the whole stay, total guests) and runs
the discount calculation on it. This is the server-side version of what
the booking dialog previews, and what checkout persists as total_price.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pricing.core.discount_config import normalize_time, resolve_discount_config, time_to_hours
from pricing.core.discount_engine import (
    DiscountCalculationResult,
    calculate_discount,
    round_money,
)
from pricing.core.errors import InvalidPricingRequest, NoApplicablePrice
from pricing.core.guest_pricing import resolve_guest_price

logger = logging.getLogger(__name__)

DEFAULT_MAX_TABLES = 10


@dataclass(frozen=True)
class TableConfiguration:
    table_number: int
    guest_count: int


@dataclass(frozen=True)
class ServiceQuote:
    service_id: Optional[str]
    arrival_time: str
    departure_time: str
    duration_hours: float
    guest_count: int
    table_prices: List[float]
    base_price: float
    discount: DiscountCalculationResult = field(repr=False)

    @property
    def total_price(self) -> float:
        return self.discount.final_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceId": self.service_id,
            "arrivalTime": self.arrival_time,
            "departureTime": self.departure_time,
            "durationHours": self.duration_hours,
            "guestCount": self.guest_count,
            "tablePrices": list(self.table_prices),
            "basePrice": self.base_price,
            "totalPrice": self.total_price,
            "discount": self.discount.to_dict(),
        }


def parse_time(value: Any) -> float:
    """Parse "HH:MM" into fractional hours since midnight."""
    normalized = normalize_time(value)
    if normalized is None:
        raise InvalidPricingRequest(f"Invalid time {value!r}, expected HH:MM")
    return time_to_hours(normalized)


def booking_duration_hours(arrival_time: str, departure_time: str) -> float:
    """Same-day duration between arrival and departure."""
    duration = parse_time(departure_time) - parse_time(arrival_time)
    if duration <= 0:
        raise InvalidPricingRequest(
            f"Departure {departure_time!r} must be after arrival {arrival_time!r}"
        )
    return duration


def _tables_from(
    tables: Optional[Sequence[Any]],
    guest_count: Optional[int],
) -> List[TableConfiguration]:
    if not tables:
        return [TableConfiguration(table_number=1, guest_count=guest_count or 1)]
    out: List[TableConfiguration] = []
    for i, table in enumerate(tables, start=1):
        if isinstance(table, TableConfiguration):
            out.append(table)
        elif isinstance(table, Mapping):
            out.append(
                TableConfiguration(
                    table_number=int(table.get("table_number") or i),
                    guest_count=int(table.get("guest_count") or 0),
                )
            )
        else:
            raise InvalidPricingRequest(f"Invalid table configuration: {table!r}")
    return out


def quote_service_booking(
    service: Mapping[str, Any],
    arrival_time: str,
    departure_time: str,
    tables: Optional[Sequence[Any]] = None,
    guest_count: Optional[int] = None,
) -> ServiceQuote:
    """
    Price a booking of `service` between arrival and departure.

    Each table is priced from its own guest count and the per-table
    prices are summed over the duration; the total guest count across
    tables drives the group discount. Raises NoApplicablePrice when a
    table's party is larger than every pricing tier.
    """
    duration = booking_duration_hours(arrival_time, departure_time)
    layout = _tables_from(tables, guest_count)

    max_tables = int(service.get("max_tables") or DEFAULT_MAX_TABLES)
    if len(layout) > max_tables:
        raise InvalidPricingRequest(
            f"Service allows at most {max_tables} tables, got {len(layout)}"
        )

    service_type = service.get("service_type")
    unit_price = float(service.get("price") or 0)
    rules = service.get("guest_pricing_rules")

    table_prices: List[float] = []
    for table in layout:
        if table.guest_count < 1:
            raise InvalidPricingRequest(
                f"Table {table.table_number} needs at least 1 guest"
            )
        hourly = resolve_guest_price(service_type, unit_price, rules, table.guest_count)
        if hourly is None:
            raise NoApplicablePrice(table.guest_count)
        table_prices.append(round_money(hourly * duration))

    base_price = round_money(sum(table_prices))
    total_guests = sum(t.guest_count for t in layout)
    service_id = service.get("id")

    discount = calculate_discount(
        base_price,
        duration,
        total_guests,
        resolve_discount_config(service),
        booking_start_time=arrival_time,
        booking_end_time=departure_time,
        service_id=str(service_id) if service_id is not None else None,
    )

    logger.info(
        "Quoted service=%s duration=%.2fh guests=%d base=%.2f final=%.2f discounts=%s",
        service_id, duration, total_guests, base_price,
        discount.final_price, list(discount.applied_discounts),
    )

    return ServiceQuote(
        service_id=str(service_id) if service_id is not None else None,
        arrival_time=arrival_time,
        departure_time=departure_time,
        duration_hours=duration,
        guest_count=total_guests,
        table_prices=table_prices,
        base_price=base_price,
        discount=discount,
    )


def describe_discount_offers(service: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Summarize the discounts a service advertises on its listing card.

    One entry per mechanism that can ever fire, carrying the best value
    the service offers for it.
    """
    config = resolve_discount_config(service)
    offers: List[Dict[str, Any]] = []

    if config.overall_discount_percent > 0:
        pct = config.overall_discount_percent
        offers.append({
            "type": "overall",
            "percent": pct,
            "label": f"{pct:g}% off",
            "description": f"{pct:g}% discount on all bookings",
        })

    group_pct = max((r.discount_percent for r in config.group_discounts), default=0)
    if group_pct > 0:
        min_guests = min(
            r.min_guests for r in config.group_discounts if r.discount_percent > 0
        )
        offers.append({
            "type": "group",
            "percent": group_pct,
            "minGuests": min_guests,
            "label": f"Up to {group_pct:g}% off",
            "description": f"Group discounts starting from {min_guests} guests",
        })

    timeslot_pct = max((r.discount_percent for r in config.timeslot_discounts), default=0)
    if timeslot_pct > 0:
        offers.append({
            "type": "timeslot",
            "percent": timeslot_pct,
            "label": f"{timeslot_pct:g}% off",
            "description": "Time-based discounts available",
        })

    free_hours = max((r.free_hours for r in config.free_hour_discounts), default=0)
    if free_hours > 0:
        offers.append({
            "type": "freeHours",
            "freeHours": free_hours,
            "label": f"{free_hours:g} free hour{'s' if free_hours > 1 else ''}",
            "description": "Free hours with extended bookings",
        })

    return offers
