import uuid
from datetime import datetime, date, timezone
from typing import Any, Optional

from sqlalchemy import String, DateTime, DECIMAL, Text, Index, JSON, Date
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = 'orders'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    order_number: Mapped[str] = mapped_column(String(20), unique=True)
    daily_serial: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    serial_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # List of item dicts: id, name, nameEn, nameAr, type, quantity, unitPrice, totalPrice
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    total_amount: Mapped[float] = mapped_column(DECIMAL(10, 2))
    payment_method: Mapped[str] = mapped_column(String(20))
    delivery_platform: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default='completed')
    # Tender details, present for cash and mixed payments
    cash_amount: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    card_amount: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    cash_received: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    change_amount: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    created_by: Mapped[str] = mapped_column(String(255))

    __table_args__ = (
        Index('ix_orders_created_at', 'created_at'),
        Index('ix_orders_status_created', 'status', 'created_at'),  # EOD range scans
        Index('ix_orders_serial_date', 'serial_date'),
    )


class CanceledOrder(Base):
    __tablename__ = 'canceled_orders'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    original_order_id: Mapped[str] = mapped_column(String(36))
    canceled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    canceled_by: Mapped[str] = mapped_column(String(255))
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Snapshot of the order as it was when canceled
    order_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    __table_args__ = (
        Index('ix_canceled_orders_canceled_at', 'canceled_at'),
        Index('ix_canceled_orders_original_order_id', 'original_order_id'),
    )
