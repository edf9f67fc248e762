import random
import unittest

from pricing.core.discount_config import DiscountConfig, FreeHourRule, GroupRule
from pricing.core.discount_engine import (
    FREE_HOURS,
    GROUP_DISCOUNT,
    OVERALL_DISCOUNT,
    TIMESLOT_DISCOUNT,
    calculate_discount,
    compute_charged_hours,
    round_money,
)
from pricing.core.errors import InvalidPricingRequest


class DiscountEngineTests(unittest.TestCase):
    def test_no_discounts_keeps_price(self):
        out = calculate_discount(100, 2, 1, {})
        self.assertEqual(out.final_price, 100.0)
        self.assertEqual(out.total_savings, 0.0)
        self.assertEqual(out.applied_discounts, ())
        self.assertEqual(out.discount_breakdown, {})
        self.assertEqual(out.paid_hours, 2.0)

    def test_none_config_is_treated_as_empty(self):
        out = calculate_discount(55.5, 1.5, 3, None, "10:00", "11:30", "svc")
        self.assertEqual(out.final_price, 55.5)
        self.assertEqual(out.applied_discounts, ())

    def test_overall_discount(self):
        out = calculate_discount(100, 2, 1, {"overallDiscountPercent": 20})
        self.assertEqual(out.final_price, 80.0)
        self.assertEqual(out.total_savings, 20.0)
        self.assertEqual(out.applied_discounts, (OVERALL_DISCOUNT,))
        self.assertEqual(out.discount_breakdown, {"overallDiscount": 20.0})

    def test_free_hour_blocks_repeat_over_duration(self):
        config = {"freeHourDiscounts": [{"thresholdHours": 3, "freeHours": 1}]}
        out = calculate_discount(120, 8, 1, config)
        self.assertEqual(out.paid_hours, 6.0)
        self.assertEqual(out.final_price, 90.0)
        self.assertEqual(out.applied_discounts, (FREE_HOURS,))
        self.assertEqual(out.discount_breakdown, {"freeHours": 2.0})

    def test_free_hour_partial_block_is_charged(self):
        config = {"freeHourDiscounts": [{"thresholdHours": 3, "freeHours": 1}]}
        out = calculate_discount(100, 5, 1, config)
        self.assertEqual(out.paid_hours, 4.0)
        self.assertEqual(out.final_price, 80.0)

    def test_free_hour_needs_one_full_block(self):
        config = {"freeHourDiscounts": [{"thresholdHours": 3, "freeHours": 1}]}
        out = calculate_discount(100, 3.5, 1, config)
        self.assertEqual(out.final_price, 100.0)
        self.assertEqual(out.paid_hours, 3.5)
        self.assertNotIn(FREE_HOURS, out.applied_discounts)

    def test_free_hour_rule_filtered_by_service(self):
        config = {
            "freeHourDiscounts": [
                {"thresholdHours": 3, "freeHours": 1, "serviceIds": ["svc-a"]},
                {"thresholdHours": 2, "freeHours": 1},
            ]
        }
        out = calculate_discount(90, 6, 1, config, service_id="svc-b")
        # Second rule: blocks of 3, two complete blocks -> 4 charged hours
        self.assertEqual(out.paid_hours, 4.0)
        self.assertEqual(out.final_price, 60.0)

        out = calculate_discount(90, 6, 1, config, service_id="svc-a")
        self.assertEqual(out.paid_hours, 5.0)
        self.assertEqual(out.final_price, 75.0)

    def test_service_scoped_rule_skipped_without_service_id(self):
        config = {"freeHourDiscounts": [{"thresholdHours": 1, "freeHours": 1, "serviceIds": ["x"]}]}
        out = calculate_discount(40, 4, 1, config)
        self.assertEqual(out.final_price, 40.0)

    def test_only_first_free_hour_rule_applies(self):
        config = {
            "freeHourDiscounts": [
                {"thresholdHours": 3, "freeHours": 1},
                {"thresholdHours": 1, "freeHours": 1},
            ]
        }
        out = calculate_discount(80, 8, 1, config)
        self.assertEqual(out.paid_hours, 6.0)
        self.assertEqual(out.final_price, 60.0)
        self.assertEqual(out.applied_discounts.count(FREE_HOURS), 1)

    def test_charged_hours_fractional_duration(self):
        rule = FreeHourRule(threshold_hours=2, free_hours=1)
        self.assertEqual(compute_charged_hours(7.5, rule), 5.5)

    def test_group_discount_takes_max_qualifying_tier(self):
        config = {
            "groupDiscounts": [
                {"minGuests": 2, "discountPercent": 10},
                {"minGuests": 5, "discountPercent": 25},
            ]
        }
        out = calculate_discount(100, 2, 6, config)
        self.assertEqual(out.discount_breakdown, {"groupDiscount": 25.0})
        self.assertEqual(out.final_price, 75.0)

        out = calculate_discount(100, 2, 3, config)
        self.assertEqual(out.discount_breakdown, {"groupDiscount": 10.0})

        out = calculate_discount(100, 2, 1, config)
        self.assertEqual(out.applied_discounts, ())

    def test_group_discount_order_independent(self):
        config = {
            "groupDiscounts": [
                {"minGuests": 5, "discountPercent": 15},
                {"minGuests": 2, "discountPercent": 30},
            ]
        }
        out = calculate_discount(100, 1, 6, config)
        self.assertEqual(out.discount_breakdown["groupDiscount"], 30.0)

    def test_timeslot_discount_prorated_by_overlap(self):
        config = {"timeslotDiscounts": [{"start": "20:00", "end": "22:00", "discountPercent": 50}]}
        out = calculate_discount(100, 4, 1, config, "18:00", "22:00")
        self.assertEqual(out.final_price, 75.0)
        self.assertEqual(out.applied_discounts, (TIMESLOT_DISCOUNT,))
        self.assertEqual(out.discount_breakdown, {"timeslotDiscount": 50.0})

    def test_timeslot_partial_hour_overlap(self):
        config = {"timeslotDiscounts": [{"start": "12:00", "end": "13:30", "discountPercent": 20}]}
        out = calculate_discount(60, 2, 1, config, "13:00", "15:00")
        # 0.5h of 2h at 20% -> 60 * 0.25 * 0.2 = 3
        self.assertEqual(out.final_price, 57.0)

    def test_timeslot_without_overlap_not_applied(self):
        config = {"timeslotDiscounts": [{"start": "10:00", "end": "12:00", "discountPercent": 50}]}
        out = calculate_discount(100, 4, 1, config, "18:00", "22:00")
        self.assertEqual(out.final_price, 100.0)
        self.assertEqual(out.applied_discounts, ())

    def test_timeslot_touching_windows_do_not_overlap(self):
        config = {"timeslotDiscounts": [{"start": "10:00", "end": "18:00", "discountPercent": 50}]}
        out = calculate_discount(100, 4, 1, config, "18:00", "22:00")
        self.assertEqual(out.final_price, 100.0)

    def test_only_first_overlapping_timeslot_applies(self):
        config = {
            "timeslotDiscounts": [
                {"start": "10:00", "end": "12:00", "discountPercent": 40},
                {"start": "19:00", "end": "20:00", "discountPercent": 20},
                {"start": "18:00", "end": "22:00", "discountPercent": 50},
            ]
        }
        out = calculate_discount(100, 4, 1, config, "18:00", "22:00")
        self.assertEqual(out.discount_breakdown, {"timeslotDiscount": 20.0})
        self.assertEqual(out.final_price, 95.0)

    def test_zero_percent_timeslot_still_stops_search(self):
        config = {
            "timeslotDiscounts": [
                {"start": "10:00", "end": "12:00", "discountPercent": 0},
                {"start": "10:00", "end": "12:00", "discountPercent": 50},
            ]
        }
        out = calculate_discount(100, 2, 1, config, "10:00", "12:00")
        self.assertEqual(out.final_price, 100.0)
        self.assertEqual(out.applied_discounts, ())
        self.assertEqual(out.discount_breakdown, {})

    def test_zero_percent_timeslot_without_overlap_is_passed_over(self):
        config = {
            "timeslotDiscounts": [
                {"start": "06:00", "end": "08:00", "discountPercent": 0},
                {"start": "10:00", "end": "12:00", "discountPercent": 50},
            ]
        }
        out = calculate_discount(100, 2, 1, config, "10:00", "12:00")
        self.assertEqual(out.final_price, 50.0)
        self.assertEqual(out.applied_discounts, (TIMESLOT_DISCOUNT,))

    def test_overlap_longer_than_duration_clamps_at_zero(self):
        # Window reported as 4h while only 1h is billed: running price goes negative
        config = {"timeslotDiscounts": [{"start": "10:00", "end": "14:00", "discountPercent": 100}]}
        out = calculate_discount(80, 1, 1, config, "10:00", "14:00")
        self.assertEqual(out.final_price, 0.0)
        self.assertEqual(out.total_savings, 80.0)
        self.assertEqual(out.applied_discounts, (TIMESLOT_DISCOUNT,))

    def test_timeslot_requires_both_times(self):
        config = {"timeslotDiscounts": [{"start": "00:00", "end": "23:59", "discountPercent": 50}]}
        out = calculate_discount(100, 2, 1, config, "10:00", None)
        self.assertEqual(out.final_price, 100.0)
        out = calculate_discount(100, 2, 1, config, "garbage", "12:00")
        self.assertEqual(out.final_price, 100.0)

    def test_stacking_is_multiplicative(self):
        config = {
            "overallDiscountPercent": 10,
            "groupDiscounts": [{"minGuests": 1, "discountPercent": 10}],
        }
        out = calculate_discount(100, 1, 2, config)
        self.assertEqual(out.final_price, 81.0)
        self.assertEqual(out.total_savings, 19.0)
        self.assertEqual(out.applied_discounts, (OVERALL_DISCOUNT, GROUP_DISCOUNT))

    def test_all_mechanisms_in_fixed_order(self):
        config = {
            "overallDiscountPercent": 10,
            "freeHourDiscounts": [{"thresholdHours": 3, "freeHours": 1}],
            "groupDiscounts": [{"minGuests": 4, "discountPercent": 20}],
            "timeslotDiscounts": [{"start": "20:00", "end": "23:00", "discountPercent": 50}],
        }
        out = calculate_discount(200, 8, 4, config, "14:00", "22:00")
        # 200 -> 180 -> 135 (6/8 hours) -> 108 -> 108 - 108 * 2/8 * 0.5
        self.assertEqual(out.final_price, 94.5)
        self.assertEqual(out.total_savings, 105.5)
        self.assertEqual(out.paid_hours, 6.0)
        self.assertEqual(
            out.applied_discounts,
            (OVERALL_DISCOUNT, FREE_HOURS, GROUP_DISCOUNT, TIMESLOT_DISCOUNT),
        )
        self.assertEqual(
            out.discount_breakdown,
            {
                "overallDiscount": 10.0,
                "freeHours": 2.0,
                "groupDiscount": 20.0,
                "timeslotDiscount": 50.0,
            },
        )

    def test_accepts_typed_config(self):
        config = DiscountConfig(group_discounts=(GroupRule(min_guests=2, discount_percent=50),))
        out = calculate_discount(10, 1, 2, config)
        self.assertEqual(out.final_price, 5.0)

    def test_full_discount_clamps_at_zero(self):
        out = calculate_discount(100, 2, 1, {"overallDiscountPercent": 150})
        self.assertEqual(out.final_price, 0.0)
        self.assertEqual(out.total_savings, 100.0)

    def test_malformed_config_never_raises(self):
        config = {
            "overallDiscountPercent": "abc",
            "groupDiscounts": "oops",
            "timeslotDiscounts": [None, {"start": 5}],
            "freeHourDiscounts": [{"thresholdHours": 0, "freeHours": 1}, "x"],
        }
        out = calculate_discount(100, 4, 10, config, "10:00", "14:00")
        self.assertEqual(out.final_price, 100.0)
        self.assertEqual(out.applied_discounts, ())

    def test_invalid_preconditions_raise(self):
        for base, duration in [(0, 1), (-5, 1), (10, 0), (10, -2), ("abc", 1), (10, None)]:
            with self.assertRaises(InvalidPricingRequest):
                calculate_discount(base, duration, 1, {})
        self.assertTrue(issubclass(InvalidPricingRequest, ValueError))

    def test_to_dict_shape(self):
        out = calculate_discount(100, 2, 1, {"overallDiscountPercent": 20}).to_dict()
        self.assertEqual(
            out,
            {
                "originalPrice": 100.0,
                "finalPrice": 80.0,
                "totalSavings": 20.0,
                "appliedDiscounts": ["Overall Discount"],
                "discountBreakdown": {"overallDiscount": 20.0},
                "paidHours": 2.0,
            },
        )

    def test_round_money_half_up(self):
        self.assertEqual(round_money(0.125), 0.13)
        self.assertEqual(round_money(80.0), 80.0)
        self.assertEqual(round_money(12.344), 12.34)


def _random_config(rng: random.Random) -> dict:
    def hhmm(h: int) -> str:
        return f"{h:02d}:{rng.choice(['00', '15', '30', '45'])}"

    timeslots = []
    for _ in range(rng.randint(0, 3)):
        a, b = sorted(rng.sample(range(0, 24), 2))
        timeslots.append({"start": hhmm(a), "end": hhmm(b), "discountPercent": rng.uniform(0, 100)})
    return {
        "overallDiscountPercent": rng.choice([0, 0, rng.uniform(0, 100)]),
        "groupDiscounts": [
            {"minGuests": rng.randint(1, 10), "discountPercent": rng.uniform(0, 100)}
            for _ in range(rng.randint(0, 3))
        ],
        "timeslotDiscounts": timeslots,
        "freeHourDiscounts": [
            {"thresholdHours": rng.randint(1, 5), "freeHours": rng.choice([0.5, 1, 2])}
            for _ in range(rng.randint(0, 2))
        ],
    }


class DiscountEnginePropertyTests(unittest.TestCase):
    def setUp(self):
        self.rng = random.Random(20240601)

    def _cases(self, n=400):
        for _ in range(n):
            start_h = self.rng.randint(0, 20)
            duration = self.rng.choice([0.5, 1, 1.5, 2, 3, 4, 6, 8, 10])
            end_total = min(24.0, start_h + duration)
            end_h, end_m = int(end_total), int(round((end_total % 1) * 60))
            yield (
                round(self.rng.uniform(0.01, 2000), 2),
                duration,
                self.rng.randint(1, 12),
                _random_config(self.rng),
                f"{start_h:02d}:00",
                f"{end_h:02d}:{end_m:02d}",
            )

    def test_final_price_bounds_and_savings_identity(self):
        for base, duration, guests, config, start, end in self._cases():
            out = calculate_discount(base, duration, guests, config, start, end)
            self.assertGreaterEqual(out.final_price, 0.0)
            self.assertLessEqual(out.final_price, out.original_price)
            self.assertEqual(out.original_price, base)
            self.assertEqual(out.total_savings, round_money(out.original_price - out.final_price))
            self.assertLessEqual(out.paid_hours, duration)
            self.assertEqual(len(out.applied_discounts), len(set(out.applied_discounts)))

    def test_idempotent(self):
        for base, duration, guests, config, start, end in self._cases(100):
            first = calculate_discount(base, duration, guests, config, start, end)
            second = calculate_discount(base, duration, guests, config, start, end)
            self.assertEqual(first, second)

    def test_empty_config_is_identity(self):
        for base, duration, guests, _, start, end in self._cases(100):
            out = calculate_discount(base, duration, guests, {}, start, end)
            self.assertEqual(out.final_price, round_money(base))
            self.assertEqual(out.applied_discounts, ())
            self.assertEqual(out.paid_hours, duration)


if __name__ == "__main__":
    unittest.main()
