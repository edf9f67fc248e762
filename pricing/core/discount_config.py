"""
Discount configuration resolution.

Adapts a persisted venue_services row (or a camelCase config mapping) into
the typed DiscountConfig consumed by the discount engine. Stored discount
columns are loosely-typed JSON, so every field is validated here and
anything malformed degrades to "no discount from this mechanism".
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


@dataclass(frozen=True)
class GroupRule:
    min_guests: int
    discount_percent: float


@dataclass(frozen=True)
class TimeslotRule:
    start: str
    end: str
    discount_percent: float


@dataclass(frozen=True)
class FreeHourRule:
    threshold_hours: float
    free_hours: float
    service_ids: Tuple[str, ...] = ()

    @property
    def block_size(self) -> float:
        return self.threshold_hours + self.free_hours

    def applies_to(self, service_id: Optional[str]) -> bool:
        """Empty service_ids means the rule covers every service."""
        if not self.service_ids:
            return True
        return service_id is not None and str(service_id) in self.service_ids


@dataclass(frozen=True)
class DiscountConfig:
    overall_discount_percent: float = 0.0
    group_discounts: Tuple[GroupRule, ...] = ()
    timeslot_discounts: Tuple[TimeslotRule, ...] = ()
    free_hour_discounts: Tuple[FreeHourRule, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            self.overall_discount_percent <= 0
            and not self.group_discounts
            and not self.timeslot_discounts
            and not self.free_hour_discounts
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the stored camelCase JSON shape."""
        return {
            "overallDiscountPercent": self.overall_discount_percent,
            "groupDiscounts": [
                {"minGuests": r.min_guests, "discountPercent": r.discount_percent}
                for r in self.group_discounts
            ],
            "timeslotDiscounts": [
                {"start": r.start, "end": r.end, "discountPercent": r.discount_percent}
                for r in self.timeslot_discounts
            ],
            "freeHourDiscounts": [
                {
                    "thresholdHours": r.threshold_hours,
                    "freeHours": r.free_hours,
                    "serviceIds": list(r.service_ids),
                }
                for r in self.free_hour_discounts
            ],
        }


EMPTY_DISCOUNT_CONFIG = DiscountConfig()


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(out):
        return None
    return out


def _clamp_percent(value: Any) -> float:
    pct = to_float(value)
    if pct is None:
        return 0.0
    return max(0.0, min(100.0, pct))


def normalize_time(value: Any) -> Optional[str]:
    """
    Normalize a time-of-day to zero-padded "HH:MM".

    Accepts "H:MM", "HH:MM" and "HH:MM:SS" (seconds are dropped).
    "24:00" is allowed as an end-of-day marker. Returns None when the
    value is not a valid time.
    """
    if not isinstance(value, str):
        return None
    m = _TIME_RE.match(value.strip())
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        return None
    return f"{hour:02d}:{minute:02d}"


def time_to_hours(value: str) -> float:
    """Convert a normalized "HH:MM" to fractional hours."""
    hour, minute = value.split(":")
    return int(hour) + int(minute) / 60


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _pick(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _parse_group_rules(raw: Any) -> Tuple[GroupRule, ...]:
    rules: List[GroupRule] = []
    for entry in _as_list(raw):
        if not isinstance(entry, Mapping):
            continue
        min_guests = to_float(entry.get("minGuests"))
        if min_guests is None or min_guests < 1:
            continue
        rules.append(
            GroupRule(
                min_guests=int(math.ceil(min_guests)),
                discount_percent=_clamp_percent(entry.get("discountPercent")),
            )
        )
    return tuple(rules)


def _parse_timeslot_rules(raw: Any) -> Tuple[TimeslotRule, ...]:
    rules: List[TimeslotRule] = []
    for entry in _as_list(raw):
        if not isinstance(entry, Mapping):
            continue
        start = normalize_time(entry.get("start"))
        end = normalize_time(entry.get("end"))
        # Same-day windows only; "22:00"-"02:00" style windows never overlap.
        if start is None or end is None or start >= end:
            continue
        rules.append(
            TimeslotRule(
                start=start,
                end=end,
                discount_percent=_clamp_percent(entry.get("discountPercent")),
            )
        )
    return tuple(rules)


def _parse_free_hour_rules(raw: Any) -> Tuple[FreeHourRule, ...]:
    rules: List[FreeHourRule] = []
    for entry in _as_list(raw):
        if not isinstance(entry, Mapping):
            continue
        threshold = to_float(entry.get("thresholdHours"))
        free = to_float(entry.get("freeHours"))
        if threshold is None or free is None or threshold <= 0 or free <= 0:
            continue
        service_ids = tuple(
            str(sid) for sid in _as_list(entry.get("serviceIds")) if sid is not None
        )
        rules.append(
            FreeHourRule(threshold_hours=threshold, free_hours=free, service_ids=service_ids)
        )
    return tuple(rules)


def resolve_discount_config(record: Optional[Mapping[str, Any]]) -> DiscountConfig:
    """
    Build a DiscountConfig from a venue_services row or a camelCase config.

    Never raises: absent or malformed fields resolve to their
    "no discount" value.
    """
    if not isinstance(record, Mapping):
        return EMPTY_DISCOUNT_CONFIG

    overall = _clamp_percent(
        _pick(record, "overall_discount_percent", "overallDiscountPercent")
    )
    enabled = _pick(record, "overall_discount_enabled", "overallDiscountEnabled")
    if enabled is False:
        overall = 0.0

    return DiscountConfig(
        overall_discount_percent=overall,
        group_discounts=_parse_group_rules(
            _pick(record, "group_discounts", "groupDiscounts")
        ),
        timeslot_discounts=_parse_timeslot_rules(
            _pick(record, "timeslot_discounts", "timeslotDiscounts")
        ),
        free_hour_discounts=_parse_free_hour_rules(
            _pick(record, "free_hour_discounts", "freeHourDiscounts")
        ),
    )
