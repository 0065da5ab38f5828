"""
Tests for the end-of-day metric calculators (services.eod_calculations).

Pure functions only; no database or event loop involved.
"""
import random
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.schemas import CanceledOrderData, OrderData
from backend.app.services.eod_calculations import (
    calculate_average_order_value,
    calculate_best_selling_items,
    calculate_completion_rates,
    calculate_delivery_platform_breakdown,
    calculate_hourly_sales,
    calculate_payment_breakdown,
    calculate_tender_totals,
    calculate_total_revenue,
    calculate_vat,
    find_peak_hour,
    local_hour,
)

BASE = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)


def make_order(
    total: str = "100.00",
    method: str = "cash",
    hour: int = 12,
    items=None,
    **extra,
) -> OrderData:
    return OrderData(
        id=f"o-{random.random()}",
        order_number="ORD-0001",
        items=items or [],
        total_amount=total,
        payment_method=method,
        status="completed",
        created_at=BASE + timedelta(hours=hour),
        **extra,
    )


def make_cancellation() -> CanceledOrderData:
    return CanceledOrderData(
        id="c-1",
        original_order_id="o-x",
        canceled_at=BASE + timedelta(hours=13),
    )


# --- payment breakdown ---


def test_single_cash_order_breakdown():
    """One cash order of 100.00 is the whole cash bucket."""
    breakdown = calculate_payment_breakdown([make_order("100.00", "cash")])

    assert len(breakdown) == 1
    row = breakdown[0]
    assert row.method == "cash"
    assert row.order_count == 1
    assert row.total_amount == 100.00
    assert row.percentage == 100.00


def test_mixed_order_splits_into_cash_and_card():
    """A mixed order counts once in each bucket it pays into."""
    orders = [make_order("100.00", "mixed", cash_amount="30.00", card_amount="70.00")]

    breakdown = {row.method: row for row in calculate_payment_breakdown(orders)}

    assert set(breakdown) == {"cash", "card"}
    assert breakdown["cash"].order_count == 1
    assert breakdown["cash"].total_amount == 30.00
    assert breakdown["card"].order_count == 1
    assert breakdown["card"].total_amount == 70.00
    assert calculate_total_revenue(orders) == 100.00


def test_mixed_order_with_zero_card_part_only_counts_cash():
    orders = [make_order("50.00", "mixed", cash_amount="50.00", card_amount="0")]

    breakdown = calculate_payment_breakdown(orders)

    assert [row.method for row in breakdown] == ["cash"]


def test_breakdown_drops_empty_buckets_and_keeps_order():
    """Buckets come out as cash, card, delivery; empty ones are left out."""
    orders = [
        make_order("20.00", "delivery", delivery_platform="jahez"),
        make_order("40.00", "cash"),
    ]

    breakdown = calculate_payment_breakdown(orders)

    assert [row.method for row in breakdown] == ["cash", "delivery"]
    assert breakdown[0].percentage == pytest.approx(66.67)
    assert breakdown[1].percentage == pytest.approx(33.33)


def test_empty_window_breakdowns_are_empty():
    assert calculate_payment_breakdown([]) == []
    assert calculate_delivery_platform_breakdown([]) == []
    assert calculate_best_selling_items([]) == []


# --- tender totals ---


def test_tender_totals_exclude_delivery():
    orders = [
        make_order("10.00", "cash", cash_received="20.00", change_amount="10.00"),
        make_order("30.00", "card"),
        make_order("100.00", "mixed", cash_amount="40.00", card_amount="60.00",
                   cash_received="50.00", change_amount="10.00"),
        make_order("25.00", "delivery", delivery_platform="keeta"),
    ]

    totals = calculate_tender_totals(orders)

    assert totals.cash_total == 50.00
    assert totals.card_total == 90.00
    assert totals.cash_received == 70.00
    assert totals.change_given == 20.00


def test_revenue_rounds_half_up():
    """0.125 + 0.0 rounds to 0.13, not the banker's 0.12."""
    assert calculate_total_revenue([make_order("0.125")]) == 0.13


# --- delivery platforms ---


def test_delivery_platform_percentages_are_shares_of_delivery_revenue():
    orders = [
        make_order("30.00", "delivery", delivery_platform="keeta"),
        make_order("10.00", "delivery", delivery_platform="jahez"),
        make_order("60.00", "cash"),
    ]

    breakdown = {row.platform: row for row in calculate_delivery_platform_breakdown(orders)}

    assert set(breakdown) == {"keeta", "jahez"}
    assert breakdown["keeta"].percentage == 75.00
    assert breakdown["jahez"].percentage == 25.00


def test_unknown_platform_is_not_bucketed():
    orders = [make_order("30.00", "delivery", delivery_platform="careem")]

    assert calculate_delivery_platform_breakdown(orders) == []


# --- best sellers ---


def test_best_sellers_merge_same_name_and_type():
    """Same name and type across orders merge into one row."""
    orders = [
        make_order("20.00", items=[{"name": "Pizza", "type": "pizza", "quantity": 2, "totalPrice": 20}]),
        make_order("30.00", items=[{"name": "Pizza", "type": "pizza", "quantity": 3, "totalPrice": 30}]),
    ]

    items = calculate_best_selling_items(orders)

    assert len(items) == 1
    assert items[0].item_name == "Pizza"
    assert items[0].quantity == 5
    assert items[0].total_revenue == 50.00
    assert items[0].average_price == 10.00


def test_best_sellers_name_fallback_and_case_insensitive_key():
    orders = [
        make_order(items=[
            {"nameEn": "Shawarma", "type": "sandwich", "quantity": 1, "totalPrice": 10},
            {"name": "SHAWARMA", "type": "sandwich", "quantity": 1, "totalPrice": 10},
            {"type": "drink", "quantity": 4, "totalPrice": 8},
        ]),
    ]

    items = calculate_best_selling_items(orders)

    assert [(i.item_name, i.quantity) for i in items] == [("Unknown Item", 4), ("Shawarma", 2)]


def test_best_sellers_ties_keep_first_seen_order_and_limit():
    orders = [
        make_order(items=[
            {"name": "Tea", "type": "drink", "quantity": 2, "totalPrice": 4},
            {"name": "Coffee", "type": "drink", "quantity": 2, "totalPrice": 6},
            {"name": "Cake", "type": "dessert", "quantity": 1, "totalPrice": 5},
        ]),
    ]

    items = calculate_best_selling_items(orders, limit=2)

    assert [i.item_name for i in items] == ["Tea", "Coffee"]


def test_zero_quantity_item_has_zero_average_price():
    orders = [make_order(items=[{"name": "Water", "type": "drink", "quantity": 0, "totalPrice": 0}])]

    assert calculate_best_selling_items(orders)[0].average_price == 0.0


# --- hourly sales and peak hour ---


def test_hourly_sales_always_has_24_hours():
    hourly = calculate_hourly_sales([], timezone.utc)

    assert [h.hour for h in hourly] == list(range(24))
    assert all(h.order_count == 0 and h.revenue == 0 for h in hourly)


def test_hourly_sales_uses_report_timezone():
    """An order at 21:00 UTC falls into hour 0 at UTC+3."""
    orders = [make_order("10.00", hour=21)]

    hourly = calculate_hourly_sales(orders, timezone(timedelta(hours=3)))

    assert hourly[0].order_count == 1
    assert hourly[21].order_count == 0


def test_naive_timestamps_are_read_as_utc():
    assert local_hour(datetime(2024, 1, 15, 9, 30), timezone.utc) == 9


def test_peak_hour_picks_busiest_hour():
    orders = [make_order(hour=9), make_order(hour=18), make_order(hour=18)]

    assert find_peak_hour(calculate_hourly_sales(orders, timezone.utc)) == "18:00"


def test_peak_hour_tie_goes_to_earliest_hour():
    orders = [make_order(hour=20), make_order(hour=7)]

    assert find_peak_hour(calculate_hourly_sales(orders, timezone.utc)) == "7:00"


def test_peak_hour_of_empty_window_is_midnight():
    assert find_peak_hour(calculate_hourly_sales([], timezone.utc)) == "0:00"


# --- averages, rates and VAT ---


def test_average_order_value():
    assert calculate_average_order_value(100.0, 3) == 33.33
    assert calculate_average_order_value(0.0, 0) == 0.0


def test_empty_window_is_fully_completed():
    assert calculate_completion_rates([], []) == (100.0, 0.0)


def test_rates_always_add_up_to_100():
    orders = [make_order() for _ in range(2)]
    cancellations = [make_cancellation()]

    completion, cancellation = calculate_completion_rates(orders, cancellations)

    assert completion == 66.67
    assert cancellation == 33.33
    assert completion + cancellation == pytest.approx(100)


def test_vat_split():
    vat, net = calculate_vat(115.0, 0.15)

    assert vat == 17.25
    assert net == 97.75


# --- order independence ---


def test_results_do_not_depend_on_order_sequence():
    """Shuffling the input changes nothing but best-seller tie order."""
    orders = [
        make_order("12.50", "cash", hour=8),
        make_order("40.00", "card", hour=12),
        make_order("99.99", "mixed", hour=12, cash_amount="49.99", card_amount="50.00"),
        make_order("15.00", "delivery", hour=19, delivery_platform="hunger_station"),
    ]
    shuffled = list(reversed(orders))

    assert calculate_total_revenue(orders) == calculate_total_revenue(shuffled)
    assert calculate_payment_breakdown(orders) == calculate_payment_breakdown(shuffled)
    assert calculate_delivery_platform_breakdown(orders) == calculate_delivery_platform_breakdown(shuffled)
    assert calculate_hourly_sales(orders, timezone.utc) == calculate_hourly_sales(shuffled, timezone.utc)
    assert calculate_tender_totals(orders) == calculate_tender_totals(shuffled)


def test_breakdown_sums_to_revenue_across_tenders():
    orders = [
        make_order("12.50", "cash"),
        make_order("40.00", "card"),
        make_order("99.99", "mixed", cash_amount="49.99", card_amount="50.00"),
        make_order("33.33", "mixed", cash_amount="0.00", card_amount="33.33"),
        make_order("15.00", "delivery", delivery_platform="hunger_station"),
        make_order("27.10", "delivery", delivery_platform="keeta"),
    ]

    breakdown = calculate_payment_breakdown(orders)

    assert sum(b.total_amount for b in breakdown) == pytest.approx(calculate_total_revenue(orders), abs=0.01)
    assert sum(b.percentage for b in breakdown) == pytest.approx(100, abs=0.05)


def test_best_seller_totals_do_not_depend_on_order_sequence():
    orders = [
        make_order("20.00", items=[
            {"name": "Pizza", "type": "pizza", "quantity": 2, "totalPrice": 20},
            {"name": "Cola", "type": "drink", "quantity": 1, "totalPrice": 3},
        ]),
        make_order("35.00", items=[
            {"name": "pizza", "type": "pizza", "quantity": 3, "totalPrice": 30},
            {"name": "Cola", "type": "drink", "quantity": 2, "totalPrice": 6},
        ]),
        make_order("9.00", items=[{"name": "Cake", "type": "dessert", "quantity": 3, "totalPrice": 9}]),
    ]

    def totals(items):
        return {
            (i.item_name.lower(), i.item_type): (i.quantity, i.total_revenue, i.average_price)
            for i in items
        }

    forward = totals(calculate_best_selling_items(orders))
    for seed in range(5):
        shuffled = orders[:]
        random.Random(seed).shuffle(shuffled)
        assert totals(calculate_best_selling_items(shuffled)) == forward
    assert forward[("pizza", "pizza")] == (5, 50.0, 10.0)
