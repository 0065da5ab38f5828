"""
Tests for report helpers: date presets, report numbers and the text summary.
"""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from backend.app.core.exceptions import ReportValidationError
from backend.app.schemas import EODReportData, HourlySales, PaymentBreakdown
from backend.app.services.eod_reports import (
    date_range_for_preset,
    extract_report_number,
    render_report_summary,
    validate_report_number,
)
from backend.app.services.sequences import format_number

NOW = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)


# --- presets ---


def test_today_runs_from_local_midnight_to_now():
    start, end = date_range_for_preset("today", NOW, timezone.utc)

    assert start == datetime(2024, 3, 10, tzinfo=timezone.utc)
    assert end == NOW


def test_yesterday_is_a_full_local_day():
    start, end = date_range_for_preset("yesterday", NOW, timezone.utc)

    assert start == datetime(2024, 3, 9, tzinfo=timezone.utc)
    assert end == datetime(2024, 3, 10, tzinfo=timezone.utc)


def test_last_7_days():
    start, end = date_range_for_preset("last-7-days", NOW, timezone.utc)

    assert start == datetime(2024, 3, 3, tzinfo=timezone.utc)
    assert end == NOW


def test_presets_follow_the_report_timezone():
    """Midnight in Riyadh is 21:00 UTC the day before."""
    start, _ = date_range_for_preset("today", NOW, ZoneInfo("Asia/Riyadh"))

    assert start.astimezone(timezone.utc) == datetime(2024, 3, 9, 21, tzinfo=timezone.utc)


def test_unknown_preset_is_rejected():
    with pytest.raises(ReportValidationError):
        date_range_for_preset("last-month", NOW, timezone.utc)


# --- report numbers ---


@pytest.mark.parametrize("value,valid", [
    ("EOD-0001", True),
    ("EOD-9999", True),
    ("EOD-10000", True),
    ("EOD-001", False),
    ("EOD-00001", False),
    ("ORD-0001", False),
    ("eod-0001", False),
    ("", False),
    (None, False),
])
def test_validate_report_number(value, valid):
    assert validate_report_number(value) is valid


def test_extract_report_number():
    assert extract_report_number("EOD-0042") == 42
    assert extract_report_number("EOD-12345") == 12345
    assert extract_report_number("EOD-abc") is None
    assert extract_report_number(None) is None


def test_format_number_pads_to_four_digits():
    assert format_number("EOD", 7) == "EOD-0007"
    assert format_number("ORD", 10000) == "ORD-10000"


# --- summary ---


def test_summary_lists_totals_and_breakdown():
    report = EODReportData(
        start_date_time=NOW - timedelta(hours=8),
        end_date_time=NOW,
        report_generated_at=NOW,
        total_revenue=1234.5,
        total_cash_orders=1234.5,
        total_card_orders=0,
        total_with_vat=1234.5,
        total_without_vat=1049.33,
        vat_amount=185.18,
        total_cancelled_orders=0,
        total_orders=3,
        completed_orders=3,
        average_order_value=411.5,
        payment_breakdown=[PaymentBreakdown(method="cash", order_count=3, total_amount=1234.5, percentage=100)],
        peak_hour="12:00",
        hourly_sales=[HourlySales(hour=h, order_count=3 if h == 12 else 0, revenue=1234.5 if h == 12 else 0)
                      for h in range(24)],
        order_completion_rate=100,
        order_cancellation_rate=0,
    )

    summary = render_report_summary(report, "EOD-0005")

    assert summary.splitlines()[0] == "End of Day Report EOD-0005"
    assert "Revenue: SAR 1,234.50" in summary
    assert "cash: 3 orders, SAR 1,234.50 (100.00%)" in summary
    assert "Peak hour: 12:00" in summary
