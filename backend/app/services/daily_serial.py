# backend/app/services/daily_serial.py
"""
Daily order serial (001, 002, ...) printed on receipts and kitchen tickets.

The counter belongs to the business day, not the calendar day: generating the
end-of-day report resets it, so the first order after closing starts again at
001. Resetting a counter that is already reset is a no-op.
"""
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.constants import DAILY_SERIAL_DIGITS
from backend.app.core.exceptions import SideEffectError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import daily_serial_resets_total
from backend.app.models.daily_serial import DailySerialCounter

logger = get_logger(__name__)

ORDERS_COUNTER = "orders"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailySerialService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = _utcnow,
        counter_name: str = ORDERS_COUNTER,
    ):
        self.session_factory = session_factory
        self.tz = tz
        self.clock = clock
        self.counter_name = counter_name

    def business_date(self) -> date:
        return self.clock().astimezone(self.tz).date()

    async def _get_counter(self, session: AsyncSession) -> DailySerialCounter:
        counter = await session.get(DailySerialCounter, self.counter_name, with_for_update=True)
        if counter is None:
            counter = DailySerialCounter(name=self.counter_name, serial_date=None, last_serial=0)
            session.add(counter)
        return counter

    async def reset_daily_serial(self) -> bool:
        """
        Restart the serial for the next business day.
        Returns False when the counter was already in its reset state.
        Raises SideEffectError on database failure.
        """
        today = self.business_date()
        try:
            async with self.session_factory() as session:
                counter = await self._get_counter(session)
                if counter.last_serial == 0 and counter.serial_date == today:
                    logger.info("Daily serial already reset", serial_date=str(today))
                    daily_serial_resets_total.labels(status="noop").inc()
                    return False

                previous = counter.last_serial
                counter.last_serial = 0
                counter.serial_date = today
                counter.reset_at = self.clock()
                await session.commit()
        except SQLAlchemyError as e:
            daily_serial_resets_total.labels(status="error").inc()
            raise SideEffectError("Daily serial reset", str(e)) from e

        daily_serial_resets_total.labels(status="reset").inc()
        logger.info("Daily serial reset", previous_serial=previous, serial_date=str(today))
        return True

    async def next_daily_serial(self, session: AsyncSession) -> Tuple[str, date]:
        """
        Take the next serial inside the caller's transaction.
        Caller must commit the session after this returns.
        """
        today = self.business_date()
        counter = await self._get_counter(session)
        if counter.serial_date != today:
            counter.serial_date = today
            counter.last_serial = 0
        counter.last_serial = (counter.last_serial or 0) + 1
        await session.flush()
        return f"{counter.last_serial:0{DAILY_SERIAL_DIGITS}d}", today
