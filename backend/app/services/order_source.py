# backend/app/services/order_source.py
"""
Order source for end-of-day reports.

Each fetch opens its own session from the factory, so the report service can
run the orders and cancellations queries concurrently.
"""
import json
from datetime import datetime, timezone
from typing import List, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.constants import REPORTABLE_ORDER_STATUSES
from backend.app.core.logging import get_logger
from backend.app.models.order import Order, CanceledOrder
from backend.app.schemas import CanceledOrderData, OrderData

logger = get_logger(__name__)


class OrderSource(Protocol):
    async def fetch_orders_in_range(self, start: datetime, end: datetime) -> List[OrderData]:
        ...

    async def fetch_canceled_orders_in_range(self, start: datetime, end: datetime) -> List[CanceledOrderData]:
        ...


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands timestamps back naive; they were written as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _load_json(value, default):
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value) if value else default
    return value


def order_to_data(order: Order) -> OrderData:
    return OrderData(
        id=order.id,
        order_number=order.order_number,
        items=_load_json(order.items, []),
        total_amount=order.total_amount,
        payment_method=order.payment_method,
        delivery_platform=order.delivery_platform,
        status=order.status,
        cash_amount=order.cash_amount,
        card_amount=order.card_amount,
        cash_received=order.cash_received,
        change_amount=order.change_amount,
        created_at=_as_utc(order.created_at),
        created_by=order.created_by,
    )


def canceled_order_to_data(canceled: CanceledOrder) -> CanceledOrderData:
    return CanceledOrderData(
        id=canceled.id,
        original_order_id=canceled.original_order_id,
        canceled_at=_as_utc(canceled.canceled_at),
        canceled_by=canceled.canceled_by,
        reason=canceled.reason,
        order_data=_load_json(canceled.order_data, {}),
    )


class SqlOrderSource:
    """Reads report inputs from the orders and canceled_orders tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_orders_in_range(self, start: datetime, end: datetime) -> List[OrderData]:
        """Completed and modified orders with start <= created_at <= end, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Order)
                .where(
                    Order.created_at.between(start, end),
                    Order.status.in_(REPORTABLE_ORDER_STATUSES),
                )
                .order_by(Order.created_at.asc())
            )
            rows = list(result.scalars().all())
        logger.debug("Fetched orders for report", count=len(rows))
        return [order_to_data(row) for row in rows]

    async def fetch_canceled_orders_in_range(self, start: datetime, end: datetime) -> List[CanceledOrderData]:
        """Cancellations with start <= canceled_at <= end, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CanceledOrder)
                .where(CanceledOrder.canceled_at.between(start, end))
                .order_by(CanceledOrder.canceled_at.asc())
            )
            rows = list(result.scalars().all())
        logger.debug("Fetched cancellations for report", count=len(rows))
        return [canceled_order_to_data(row) for row in rows]
