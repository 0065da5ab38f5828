# backend/app/services/orders.py
"""
Order service - writes the orders that end-of-day reports are built from.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import orders_created_total
from backend.app.models.order import Order, CanceledOrder
from backend.app.schemas import OrderCreate
from backend.app.services.daily_serial import DailySerialService
from backend.app.services.order_source import order_to_data
from backend.app.services.sequences import SequenceGenerator

logger = get_logger(__name__)


class OrderServiceError(ServiceError):
    """Base exception for order service errors."""


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", 404)


class InvalidOrderStatusError(OrderServiceError):
    def __init__(self, order_id: str, current_status: str):
        super().__init__(f"Order {order_id} has status '{current_status}' and cannot be canceled", 409)


class OrderService:
    """Service class for order operations."""

    def __init__(
        self,
        session: AsyncSession,
        order_numbers: SequenceGenerator,
        serials: DailySerialService,
    ):
        self.session = session
        self.order_numbers = order_numbers
        self.serials = serials

    async def create_order(self, data: OrderCreate) -> Order:
        """
        Create a completed order with its ORD-dddd number and daily serial.

        The order number comes from its own sequence transaction; the daily
        serial is taken inside this session and commits with the order.
        """
        order_number = await self.order_numbers.next_number()
        daily_serial, serial_date = await self.serials.next_daily_serial(self.session)

        order = Order(
            order_number=order_number,
            daily_serial=daily_serial,
            serial_date=serial_date,
            customer_name=data.customer_name,
            items=[item.model_dump(by_alias=True, mode="json", exclude_none=True) for item in data.items],
            total_amount=data.total_amount,
            payment_method=data.payment_method,
            delivery_platform=data.delivery_platform,
            status="completed",
            cash_amount=data.cash_amount,
            card_amount=data.card_amount,
            cash_received=data.cash_received,
            change_amount=data.change_amount,
            created_by=data.created_by,
        )
        self.session.add(order)
        await self.session.commit()
        await self.session.refresh(order)

        orders_created_total.labels(payment_method=data.payment_method).inc()
        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order_number,
            daily_serial=daily_serial,
            payment_method=data.payment_method,
        )
        return order

    async def get_order(self, order_id: str) -> Order:
        order = await self.session.get(Order, order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def cancel_order(self, order_id: str, canceled_by: str, reason: Optional[str] = None) -> CanceledOrder:
        """Mark the order canceled and keep a snapshot of it in canceled_orders."""
        order = await self.get_order(order_id)
        if order.status == "canceled":
            raise InvalidOrderStatusError(order_id, order.status)

        snapshot = order_to_data(order).model_dump(by_alias=True, mode="json")
        canceled = CanceledOrder(
            original_order_id=order.id,
            canceled_at=datetime.now(timezone.utc),
            canceled_by=canceled_by,
            reason=reason,
            order_data=snapshot,
        )
        order.status = "canceled"
        self.session.add(canceled)
        await self.session.commit()
        await self.session.refresh(canceled)

        logger.info("Order canceled", order_id=order_id, order_number=order.order_number, canceled_by=canceled_by)
        return canceled
