from datetime import datetime, date
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Date
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base


class DailySerialCounter(Base):
    """
    Per-business-day order serial (001, 002, ...) printed on receipts.
    Single row keyed by name; unrelated to order and report numbers.
    """
    __tablename__ = 'daily_serial_counters'
    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    serial_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_serial: Mapped[int] = mapped_column(Integer, default=0)
    reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
