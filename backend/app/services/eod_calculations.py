# backend/app/services/eod_calculations.py
"""
End-of-day metric calculators.

Pure functions over the in-memory orders and cancellations of one report
window. None of them touch the database or shared state, so they can run in
any order. Money is summed as float and rounded half-up to cents on output.
"""
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional, Sequence

from backend.app.core.constants import (
    DELIVERY_PLATFORMS,
    HOURS_PER_DAY,
    PAYMENT_BREAKDOWN_METHODS,
)
from backend.app.core.money import parse_amount, percentage, round_money
from backend.app.schemas import (
    BestSellingItem,
    CanceledOrderData,
    DeliveryPlatformBreakdown,
    HourlySales,
    OrderData,
    PaymentBreakdown,
)


@dataclass(frozen=True)
class TenderTotals:
    cash_total: float
    card_total: float
    cash_received: float
    change_given: float


def calculate_total_revenue(orders: Sequence[OrderData]) -> float:
    """Sum of totalAmount over the window's completed and modified orders."""
    total = sum(parse_amount(order.total_amount) for order in orders)
    return round_money(total)


def calculate_tender_totals(orders: Sequence[OrderData]) -> TenderTotals:
    """
    Cash and card takings plus cash received / change given.

    Mixed orders use their own recorded cash/card split instead of re-deriving
    it from the total. Delivery orders are settled by the platform and never
    count towards cash or card.
    """
    cash_total = 0.0
    card_total = 0.0
    cash_received = 0.0
    change_given = 0.0

    for order in orders:
        amount = parse_amount(order.total_amount)
        if order.payment_method == "cash":
            cash_total += amount
        elif order.payment_method == "card":
            card_total += amount
        elif order.payment_method == "mixed":
            cash_total += parse_amount(order.cash_amount)
            card_total += parse_amount(order.card_amount)
        else:
            continue

        if order.payment_method in ("cash", "mixed"):
            cash_received += parse_amount(order.cash_received)
            change_given += parse_amount(order.change_amount)

    return TenderTotals(
        cash_total=round_money(cash_total),
        card_total=round_money(card_total),
        cash_received=round_money(cash_received),
        change_given=round_money(change_given),
    )


def calculate_payment_breakdown(orders: Sequence[OrderData]) -> List[PaymentBreakdown]:
    """
    Revenue split into cash, card and delivery buckets.

    A mixed order adds its cash portion to the cash bucket and its card portion
    to the card bucket, counting once in each bucket it contributes to. Buckets
    without any amount are left out.
    """
    buckets: Dict[str, Dict[str, float]] = {
        method: {"amount": 0.0, "count": 0} for method in PAYMENT_BREAKDOWN_METHODS
    }

    for order in orders:
        amount = parse_amount(order.total_amount)
        if order.payment_method == "mixed":
            cash_part = parse_amount(order.cash_amount)
            card_part = parse_amount(order.card_amount)
            if cash_part > 0:
                buckets["cash"]["amount"] += cash_part
                buckets["cash"]["count"] += 1
            if card_part > 0:
                buckets["card"]["amount"] += card_part
                buckets["card"]["count"] += 1
        elif order.payment_method in buckets:
            buckets[order.payment_method]["amount"] += amount
            buckets[order.payment_method]["count"] += 1

    total_revenue = calculate_total_revenue(orders)

    return [
        PaymentBreakdown(
            method=method,
            order_count=int(data["count"]),
            total_amount=round_money(data["amount"]),
            percentage=percentage(data["amount"], total_revenue),
        )
        for method, data in buckets.items()
        if round_money(data["amount"]) > 0
    ]


def calculate_delivery_platform_breakdown(orders: Sequence[OrderData]) -> List[DeliveryPlatformBreakdown]:
    """Delivery orders per platform; percentages are shares of delivery revenue only."""
    platforms: Dict[str, Dict[str, float]] = {
        platform: {"amount": 0.0, "count": 0} for platform in DELIVERY_PLATFORMS
    }

    delivery_total = 0.0
    for order in orders:
        if order.payment_method != "delivery":
            continue
        amount = parse_amount(order.total_amount)
        delivery_total += amount
        bucket = platforms.get(order.delivery_platform or "")
        if bucket is not None:
            bucket["amount"] += amount
            bucket["count"] += 1

    delivery_total = round_money(delivery_total)

    return [
        DeliveryPlatformBreakdown(
            platform=platform,
            order_count=int(data["count"]),
            total_amount=round_money(data["amount"]),
            percentage=percentage(data["amount"], delivery_total),
        )
        for platform, data in platforms.items()
        if round_money(data["amount"]) > 0
    ]


def calculate_best_selling_items(
    orders: Sequence[OrderData],
    limit: Optional[int] = None,
) -> List[BestSellingItem]:
    """
    Items grouped by lower-cased name and type, most sold first.

    Equal quantities keep first-seen order (sorted() is stable), so the order
    of ties follows the order of the input.
    """
    stats: Dict[str, Dict] = {}

    for order in orders:
        for item in order.items:
            name = item.display_name
            key = f"{name.lower()}_{item.type}"
            entry = stats.get(key)
            if entry is None:
                entry = stats[key] = {
                    "name": name,
                    "type": item.type,
                    "quantity": 0,
                    "revenue": 0.0,
                }
            entry["quantity"] += item.quantity or 0
            entry["revenue"] += item.total_price or 0.0

    ranked = sorted(stats.values(), key=lambda e: e["quantity"], reverse=True)
    if limit is not None:
        ranked = ranked[:limit]

    return [
        BestSellingItem(
            item_name=entry["name"],
            item_type=entry["type"],
            quantity=entry["quantity"],
            total_revenue=round_money(entry["revenue"]),
            average_price=round_money(entry["revenue"] / entry["quantity"]) if entry["quantity"] > 0 else 0.0,
        )
        for entry in ranked
    ]


def local_hour(moment: datetime, tz: Optional[tzinfo] = None) -> int:
    """
    Hour of day of `moment` in `tz`, or in the server's local timezone when
    tz is None. Naive timestamps are read as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).hour


def calculate_hourly_sales(orders: Sequence[OrderData], tz: Optional[tzinfo] = None) -> List[HourlySales]:
    """Order count and revenue for every hour 0-23, empty hours included."""
    hourly = [{"count": 0, "revenue": 0.0} for _ in range(HOURS_PER_DAY)]

    for order in orders:
        bucket = hourly[local_hour(order.created_at, tz)]
        bucket["count"] += 1
        bucket["revenue"] += parse_amount(order.total_amount)

    return [
        HourlySales(hour=hour, order_count=data["count"], revenue=round_money(data["revenue"]))
        for hour, data in enumerate(hourly)
    ]


def find_peak_hour(hourly_sales: Sequence[HourlySales]) -> str:
    """Busiest hour by order count as '<hour>:00'; the earliest hour wins ties."""
    peak = hourly_sales[0]
    for current in hourly_sales[1:]:
        if current.order_count > peak.order_count:
            peak = current
    return f"{peak.hour}:00"


def calculate_average_order_value(total_revenue: float, order_count: int) -> float:
    if order_count <= 0:
        return 0.0
    return round_money(total_revenue / order_count)


def calculate_completion_rates(
    orders: Sequence[OrderData],
    cancellations: Sequence[CanceledOrderData],
) -> tuple[float, float]:
    """
    (completion, cancellation) percentages. An empty window counts as fully
    completed; cancellation is the complement of the rounded completion rate
    so the pair always adds up to 100.
    """
    completed = len(orders)
    canceled = len(cancellations)
    if completed + canceled == 0:
        completion = 100.0
    else:
        completion = round_money(completed / (completed + canceled) * 100)
    return completion, round_money(100 - completion)


def calculate_vat(total_revenue: float, vat_rate: float) -> tuple[float, float]:
    """(vat_amount, total_without_vat) for a VAT-inclusive revenue."""
    vat_amount = total_revenue * vat_rate
    return round_money(vat_amount), round_money(total_revenue - vat_amount)
