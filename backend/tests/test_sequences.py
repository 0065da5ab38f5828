"""
Tests for sequential report/order numbers (services.sequences).

SQLite has no generate_eod_report_number(), so against the test database the
first tier always fails and the last-row tier takes over.
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import SequenceExhaustedError
from backend.app.models.eod_report import EODReport
from backend.app.services.sequences import (
    DatabaseFunctionStrategy,
    SequenceGenerator,
    TimestampStrategy,
    order_number_sequence,
    report_number_sequence,
)


def _report_row(report_number, created_at):
    zero = Decimal("0.00")
    return EODReport(
        report_number=report_number,
        report_date=created_at.date(),
        start_date_time=created_at,
        end_date_time=created_at,
        total_revenue=zero,
        total_with_vat=zero,
        total_without_vat=zero,
        vat_amount=zero,
        total_cash_orders=zero,
        total_card_orders=zero,
        average_order_value=zero,
        order_completion_rate=Decimal("100.00"),
        order_cancellation_rate=zero,
        generated_by="test",
        generated_at=created_at,
        created_at=created_at,
    )


class StaticStrategy:
    def __init__(self, tier, value=None, error=None):
        self.tier = tier
        self.value = value
        self.error = error
        self.calls = 0

    async def next_value(self, prefix):
        self.calls += 1
        if self.error:
            raise self.error
        return self.value


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):
        return self._value


class _FakeSession:
    def __init__(self, value):
        self.value = value
        self.committed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        return _FakeResult(self.value)

    async def commit(self):
        self.committed = True


# --- full generator against the test database ---


@pytest.mark.asyncio
async def test_first_report_number_without_database_function(session_factory):
    """No database function and no saved reports gives EOD-0001."""
    generator = report_number_sequence(session_factory)

    assert await generator.next_number() == "EOD-0001"


@pytest.mark.asyncio
async def test_last_row_number_is_incremented(test_session: AsyncSession, session_factory):
    """The most recently created report decides the next number."""
    test_session.add_all([
        _report_row("EOD-0007", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        _report_row("EOD-0041", datetime(2024, 1, 2, tzinfo=timezone.utc)),
    ])
    await test_session.commit()

    assert await report_number_sequence(session_factory).next_number() == "EOD-0042"


@pytest.mark.asyncio
async def test_last_row_number_widens_past_9999(test_session: AsyncSession, session_factory):
    """The count keeps going with a fifth digit instead of wrapping or falling back to the clock."""
    test_session.add(_report_row("EOD-9999", datetime(2024, 1, 1, tzinfo=timezone.utc)))
    await test_session.commit()
    generator = report_number_sequence(session_factory)

    assert await generator.next_number() == "EOD-10000"

    test_session.add(_report_row("EOD-10000", datetime(2024, 1, 2, tzinfo=timezone.utc)))
    await test_session.commit()

    assert await generator.next_number() == "EOD-10001"


@pytest.mark.asyncio
async def test_malformed_last_number_restarts_at_one(test_session: AsyncSession, session_factory):
    test_session.add(_report_row("LEGACY-7", datetime(2024, 1, 1, tzinfo=timezone.utc)))
    await test_session.commit()

    assert await report_number_sequence(session_factory).next_number() == "EOD-0001"


@pytest.mark.asyncio
async def test_preview_matches_next_issued_number(test_session: AsyncSession, session_factory):
    """Preview is read-only: asking twice gives the same answer."""
    test_session.add(_report_row("EOD-0003", datetime(2024, 1, 1, tzinfo=timezone.utc)))
    await test_session.commit()

    preview = report_number_sequence(session_factory, advance=False)

    assert await preview.next_number() == "EOD-0004"
    assert await preview.next_number() == "EOD-0004"


@pytest.mark.asyncio
async def test_order_numbers_use_their_own_prefix(session_factory):
    assert await order_number_sequence(session_factory).next_number() == "ORD-0001"


# --- tier selection ---


@pytest.mark.asyncio
async def test_first_valid_tier_wins():
    first = StaticStrategy("database", value="EOD-0100")
    second = StaticStrategy("last_row", value="EOD-0005")

    generator = SequenceGenerator("eod_report", "EOD", [first, second])

    assert await generator.next_number() == "EOD-0100"
    assert second.calls == 0


@pytest.mark.asyncio
async def test_failing_tier_falls_through():
    failing = StaticStrategy("database", error=RuntimeError("function does not exist"))
    fallback = StaticStrategy("last_row", value="EOD-0002")

    generator = SequenceGenerator("eod_report", "EOD", [failing, fallback])

    assert await generator.next_number() == "EOD-0002"


@pytest.mark.asyncio
async def test_all_tiers_failing_raises():
    generator = SequenceGenerator("eod_report", "EOD", [
        StaticStrategy("database", error=RuntimeError("down")),
        StaticStrategy("last_row", error=RuntimeError("down too")),
    ])

    with pytest.raises(SequenceExhaustedError) as exc_info:
        await generator.next_number()

    assert exc_info.value.status_code == 500
    assert len(exc_info.value.failures) == 2


@pytest.mark.asyncio
async def test_database_value_in_wrong_format_falls_through():
    """A database function answering 'EOD-1' is ignored, not trusted."""
    session = _FakeSession("EOD-1")
    strategy = DatabaseFunctionStrategy(lambda: session, "generate_eod_report_number")
    fallback = StaticStrategy("last_row", value="EOD-0009")

    generator = SequenceGenerator("eod_report", "EOD", [strategy, fallback])

    assert await generator.next_number() == "EOD-0009"


@pytest.mark.asyncio
async def test_database_value_is_committed_only_when_advancing():
    session = _FakeSession("EOD-0010")

    issued = await DatabaseFunctionStrategy(lambda: session, "generate_eod_report_number").next_value("EOD")
    assert issued == "EOD-0010"
    assert session.committed is True

    peek_session = _FakeSession("EOD-0011")
    peeked = await DatabaseFunctionStrategy(
        lambda: peek_session, "get_next_eod_report_number", commit=False
    ).next_value("EOD")
    assert peeked == "EOD-0011"
    assert peek_session.committed is False


def test_database_function_name_is_checked():
    with pytest.raises(ValueError):
        DatabaseFunctionStrategy(lambda: None, "nextval('x'); DROP TABLE eod_reports")


@pytest.mark.asyncio
async def test_timestamp_tier_uses_last_four_millisecond_digits():
    strategy = TimestampStrategy(clock=lambda: 1700000001.5)

    assert await strategy.next_value("EOD") == "EOD-1500"
