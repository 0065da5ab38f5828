# backend/app/services/sequences.py
"""
Sequential human-readable numbers: EOD-0001 for reports, ORD-0001 for orders.

A SequenceGenerator tries its strategies in order and returns the first
valid number:

1. DatabaseFunctionStrategy - a PostgreSQL function backed by a real sequence.
2. LastRowStrategy - last issued number in the table, plus one.
3. TimestampStrategy - last four digits of the epoch milliseconds.

Tiers 2 and 3 are not atomic. Two concurrent callers that both fall back to
tier 2 can derive the same number, and tier 3 can repeat or go backwards.
Only tier 1 gives a gap-free, never-reused sequence; deploy the migration
that creates the functions to get it.

Numbers are zero-padded to four digits but never wrap: after EOD-9999 the
next number is EOD-10000, and it widens to five digits. The PostgreSQL
functions pad the same way.
"""
import re
import time
from typing import Callable, List, Optional, Protocol

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import InstrumentedAttribute

from backend.app.core.constants import SEQUENCE_DIGITS
from backend.app.core.logging import get_logger
from backend.app.core.metrics import sequence_numbers_issued_total
from backend.app.core.exceptions import SequenceExhaustedError
from backend.app.models.eod_report import EODReport
from backend.app.models.order import Order

logger = get_logger(__name__)

_FUNCTION_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def format_number(prefix: str, value: int) -> str:
    return f"{prefix}-{value:0{SEQUENCE_DIGITS}d}"


def is_valid_number(prefix: str, value: Optional[str]) -> bool:
    """True for PREFIX-dddd, or a wider number without leading zeros once past 9999."""
    if not value:
        return False
    pattern = rf"{re.escape(prefix)}-(\d{{{SEQUENCE_DIGITS}}}|[1-9]\d{{{SEQUENCE_DIGITS},}})"
    return re.fullmatch(pattern, value) is not None


def extract_number(prefix: str, value: Optional[str]) -> Optional[int]:
    """Numeric suffix of PREFIX-<digits>, or None if the value has another shape."""
    if not value:
        return None
    match = re.fullmatch(rf"{re.escape(prefix)}-(\d+)", value)
    return int(match.group(1)) if match else None


class SequenceStrategy(Protocol):
    tier: str

    async def next_value(self, prefix: str) -> Optional[str]:
        """Return a candidate number, None to fall through, or raise."""
        ...


class DatabaseFunctionStrategy:
    """Calls `SELECT <function>()` and accepts only a PREFIX-dddd result."""
    tier = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], function_name: str, commit: bool = True):
        if not _FUNCTION_NAME_RE.match(function_name):
            raise ValueError(f"Invalid function name: {function_name}")
        self.session_factory = session_factory
        self.function_name = function_name
        self.commit = commit

    async def next_value(self, prefix: str) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(text(f"SELECT {self.function_name}() AS value"))
            value = result.scalar()
            if self.commit:
                await session.commit()

        if not is_valid_number(prefix, value):
            logger.warning(
                "Database sequence returned unexpected value",
                function=self.function_name,
                value=value,
            )
            return None
        return value


class LastRowStrategy:
    """Increments the number of the most recently created row that has one."""
    tier = "last_row"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        number_column: InstrumentedAttribute,
        created_column: InstrumentedAttribute,
    ):
        self.session_factory = session_factory
        self.number_column = number_column
        self.created_column = created_column

    async def next_value(self, prefix: str) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(self.number_column)
                .where(self.number_column.is_not(None))
                .order_by(self.created_column.desc())
                .limit(1)
            )
            last = result.scalar_one_or_none()

        last_value = extract_number(prefix, last)
        return format_number(prefix, (last_value or 0) + 1)


class TimestampStrategy:
    """Last four digits of the current epoch milliseconds. Not unique."""
    tier = "timestamp"

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    async def next_value(self, prefix: str) -> Optional[str]:
        millis = str(int(self.clock() * 1000))
        return f"{prefix}-{millis[-SEQUENCE_DIGITS:].zfill(SEQUENCE_DIGITS)}"


class SequenceGenerator:
    """Runs strategies one after another; the first usable number wins."""

    def __init__(self, name: str, prefix: str, strategies: List[SequenceStrategy]):
        self.name = name
        self.prefix = prefix
        self.strategies = strategies

    async def next_number(self) -> str:
        failures = []
        for strategy in self.strategies:
            try:
                value = await strategy.next_value(self.prefix)
            except Exception as e:
                logger.warning(
                    "Sequence tier failed, falling back",
                    sequence=self.name,
                    tier=strategy.tier,
                    error=str(e),
                )
                failures.append(f"{strategy.tier}: {e}")
                continue
            if value is None:
                continue

            if strategy.tier != "database":
                logger.warning("Sequence number issued by fallback tier", sequence=self.name, tier=strategy.tier, value=value)
            sequence_numbers_issued_total.labels(sequence=self.name, tier=strategy.tier).inc()
            return value

        raise SequenceExhaustedError(self.name, failures)


def build_sequence(
    name: str,
    prefix: str,
    session_factory: async_sessionmaker[AsyncSession],
    function_name: str,
    number_column: InstrumentedAttribute,
    created_column: InstrumentedAttribute,
    advance: bool = True,
    clock: Callable[[], float] = time.time,
) -> SequenceGenerator:
    """
    Standard three-tier generator. With advance=False the database tier calls
    a peek function and nothing is committed, so previews never consume a number.
    """
    return SequenceGenerator(
        name=name,
        prefix=prefix,
        strategies=[
            DatabaseFunctionStrategy(session_factory, function_name, commit=advance),
            LastRowStrategy(session_factory, number_column, created_column),
            TimestampStrategy(clock),
        ],
    )


def report_number_sequence(
    session_factory: async_sessionmaker[AsyncSession],
    prefix: str = "EOD",
    advance: bool = True,
    clock: Callable[[], float] = time.time,
) -> SequenceGenerator:
    return build_sequence(
        name="eod_report" if advance else "eod_report_preview",
        prefix=prefix,
        session_factory=session_factory,
        function_name="generate_eod_report_number" if advance else "get_next_eod_report_number",
        number_column=EODReport.report_number,
        created_column=EODReport.created_at,
        advance=advance,
        clock=clock,
    )


def order_number_sequence(
    session_factory: async_sessionmaker[AsyncSession],
    prefix: str = "ORD",
    advance: bool = True,
    clock: Callable[[], float] = time.time,
) -> SequenceGenerator:
    return build_sequence(
        name="order" if advance else "order_preview",
        prefix=prefix,
        session_factory=session_factory,
        function_name="generate_order_number" if advance else "get_next_order_number",
        number_column=Order.order_number,
        created_column=Order.created_at,
        advance=advance,
        clock=clock,
    )
