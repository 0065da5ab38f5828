from fastapi import APIRouter, Depends, HTTPException

from backend.app.api.deps import get_order_service
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import OrderCancel, OrderCreate, OrderResponse
from backend.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


# --- 1. СОЗДАНИЕ ЗАКАЗА ---
@router.post("", response_model=OrderResponse, response_model_by_alias=True)
async def create_order(data: OrderCreate, service: OrderService = Depends(get_order_service)):
    """Record a completed sale with its order number and daily serial."""
    logger.info(
        "Creating order",
        total_amount=float(data.total_amount),
        payment_method=data.payment_method,
        created_by=data.created_by,
    )
    try:
        order = await service.create_order(data)
    except ServiceError as e:
        _handle_service_error(e)

    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        daily_serial=order.daily_serial,
        serial_date=order.serial_date,
        status=order.status,
    )


# --- 2. ОТМЕНА ЗАКАЗА ---
@router.post("/{order_id}/cancel")
async def cancel_order(order_id: str, data: OrderCancel, service: OrderService = Depends(get_order_service)):
    try:
        canceled = await service.cancel_order(order_id, canceled_by=data.canceled_by, reason=data.reason)
    except ServiceError as e:
        _handle_service_error(e)

    return {
        "success": True,
        "canceledOrderId": canceled.id,
        "originalOrderId": canceled.original_order_id,
    }
