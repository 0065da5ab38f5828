from datetime import datetime, date
from typing import Optional

from sqlalchemy import String, DateTime, DECIMAL, Text, Index, Integer, Date
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base
from backend.app.core.constants import REPORT_TYPE_EOD
from backend.app.models.order import _new_id, _utcnow


class EODReport(Base):
    """Persisted end-of-day report. Rows are immutable once inserted."""
    __tablename__ = 'eod_reports'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    report_number: Mapped[Optional[str]] = mapped_column(String(20), unique=True, nullable=True)
    report_date: Mapped[date] = mapped_column(Date)
    report_type: Mapped[str] = mapped_column(String(20), default=REPORT_TYPE_EOD)
    start_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    # Counts
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    completed_orders: Mapped[int] = mapped_column(Integer, default=0)
    cancelled_orders: Mapped[int] = mapped_column(Integer, default=0)
    pending_orders: Mapped[int] = mapped_column(Integer, default=0)
    cash_orders_count: Mapped[int] = mapped_column(Integer, default=0)
    card_orders_count: Mapped[int] = mapped_column(Integer, default=0)

    # Money
    total_revenue: Mapped[float] = mapped_column(DECIMAL(12, 2))
    total_with_vat: Mapped[float] = mapped_column(DECIMAL(12, 2))
    total_without_vat: Mapped[float] = mapped_column(DECIMAL(12, 2))
    vat_amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    total_cash_orders: Mapped[float] = mapped_column(DECIMAL(12, 2))
    total_card_orders: Mapped[float] = mapped_column(DECIMAL(12, 2))
    total_cash_received: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    total_change_given: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    average_order_value: Mapped[float] = mapped_column(DECIMAL(12, 2))

    # Performance
    peak_hour: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    order_completion_rate: Mapped[float] = mapped_column(DECIMAL(5, 2))
    order_cancellation_rate: Mapped[float] = mapped_column(DECIMAL(5, 2))

    # JSON text of the breakdown arrays, camelCase keys as served by the API
    payment_breakdown: Mapped[str] = mapped_column(Text, default="[]")
    delivery_platform_breakdown: Mapped[str] = mapped_column(Text, default="[]")
    best_selling_items: Mapped[str] = mapped_column(Text, default="[]")
    hourly_sales: Mapped[str] = mapped_column(Text, default="[]")

    generated_by: Mapped[str] = mapped_column(String(255))
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index('ix_eod_reports_report_date', 'report_date'),
        Index('ix_eod_reports_generated_at', 'generated_at'),
        Index('ix_eod_reports_created_at', 'created_at'),
    )
