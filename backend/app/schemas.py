from datetime import datetime, date, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Literal, Optional, Union
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from backend.app.core.constants import HOURS_PER_DAY, UNKNOWN_ITEM_NAME
from backend.app.core.money import is_two_decimal

PaymentMethod = Literal["cash", "card", "mixed", "delivery"]
BreakdownMethod = Literal["cash", "card", "delivery"]
DeliveryPlatform = Literal["keeta", "hunger_station", "jahez"]
OrderStatus = Literal["completed", "modified", "canceled", "pending"]

PEAK_HOUR_RE = re.compile(r"^([01]?\d|2[0-3]):00$")


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _parse_iso_datetime(value: Any) -> Any:
    """Accept datetimes or ISO-8601 strings only; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"'{value}' is not an ISO-8601 datetime")
    else:
        raise ValueError("expected an ISO-8601 datetime string")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decimal_string(value: Any) -> Optional[str]:
    """Normalize a stored amount to its decimal-string wire form."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("amount must be a decimal value")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{value}' is not a decimal amount")
    if not parsed.is_finite():
        raise ValueError("amount must be finite")
    if parsed < 0:
        raise ValueError("amount must be non-negative")
    return str(value) if isinstance(value, str) else str(parsed)


# --- Входные данные отчёта: заказы и отмены ---

class OrderItemData(CamelModel):
    id: Union[str, int, None] = None
    name: Optional[str] = None
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    type: str = ""
    quantity: int = Field(default=0, ge=0)
    unit_price: float = Field(default=0, ge=0)
    total_price: float = Field(default=0, ge=0)

    @property
    def display_name(self) -> str:
        return self.name or self.name_en or self.name_ar or UNKNOWN_ITEM_NAME


class OrderData(CamelModel):
    """Read-only order record as delivered by the order source."""
    id: str
    order_number: str
    items: List[OrderItemData] = Field(default_factory=list)
    total_amount: str = "0"
    payment_method: PaymentMethod
    delivery_platform: Optional[str] = None
    status: OrderStatus
    cash_amount: Optional[str] = None
    card_amount: Optional[str] = None
    cash_received: Optional[str] = None
    change_amount: Optional[str] = None
    created_at: datetime
    created_by: str = ""

    @field_validator("total_amount", mode="before")
    @classmethod
    def normalize_total(cls, v: Any) -> str:
        return _decimal_string(v) or "0"

    @field_validator("cash_amount", "card_amount", "cash_received", "change_amount", mode="before")
    @classmethod
    def normalize_tender(cls, v: Any) -> Optional[str]:
        return _decimal_string(v)


class CanceledOrderData(CamelModel):
    id: str
    original_order_id: str
    canceled_at: datetime
    canceled_by: str = ""
    reason: Optional[str] = None
    order_data: Dict[str, Any] = Field(default_factory=dict)


# --- Запрос отчёта ---

class EODReportRequest(CamelModel):
    start_date_time: datetime
    end_date_time: datetime
    save_to_database: bool = False
    # Accepted for API compatibility; no calculation uses it yet
    include_previous_period_comparison: bool = False

    @field_validator("start_date_time", "end_date_time", mode="before")
    @classmethod
    def require_iso(cls, v: Any) -> Any:
        return _parse_iso_datetime(v)

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date_time >= self.end_date_time:
            raise ValueError("startDateTime must be before endDateTime")
        return self


# --- Отчёт ---

class PaymentBreakdown(CamelModel):
    method: BreakdownMethod
    order_count: int = Field(ge=0)
    total_amount: float = Field(ge=0)
    percentage: float = Field(ge=0)


class DeliveryPlatformBreakdown(CamelModel):
    platform: str
    order_count: int = Field(ge=0)
    total_amount: float = Field(ge=0)
    percentage: float = Field(ge=0)


class BestSellingItem(CamelModel):
    item_name: str
    item_type: str
    quantity: int = Field(ge=0)
    total_revenue: float = Field(ge=0)
    average_price: float = Field(ge=0)


class HourlySales(CamelModel):
    hour: int = Field(ge=0, le=HOURS_PER_DAY - 1)
    order_count: int = Field(ge=0)
    revenue: float = Field(ge=0)


MONEY_FIELDS = (
    "total_revenue",
    "total_cash_orders",
    "total_card_orders",
    "total_cash_received",
    "total_change_given",
    "total_with_vat",
    "total_without_vat",
    "vat_amount",
    "average_order_value",
)


class EODReportData(CamelModel):
    start_date_time: datetime
    end_date_time: datetime
    report_generated_at: datetime

    # Core metrics
    total_revenue: float = Field(ge=0)
    total_cash_orders: float = Field(ge=0)
    total_card_orders: float = Field(ge=0)
    total_cash_received: float = Field(default=0, ge=0)
    total_change_given: float = Field(default=0, ge=0)
    total_with_vat: float = Field(ge=0)
    total_without_vat: float = Field(ge=0)
    vat_amount: float = Field(ge=0)
    total_cancelled_orders: int = Field(ge=0)
    total_orders: int = Field(ge=0)
    completed_orders: int = Field(ge=0)
    pending_orders: int = Field(default=0, ge=0)
    average_order_value: float = Field(ge=0)

    # Breakdowns
    payment_breakdown: List[PaymentBreakdown] = Field(default_factory=list)
    delivery_platform_breakdown: List[DeliveryPlatformBreakdown] = Field(default_factory=list)
    best_selling_items: List[BestSellingItem] = Field(default_factory=list)
    peak_hour: str
    hourly_sales: List[HourlySales]

    # Rates
    order_completion_rate: float = Field(ge=0, le=100)
    order_cancellation_rate: float = Field(ge=0, le=100)

    @model_validator(mode="after")
    def check_consistency(self):
        for name in MONEY_FIELDS:
            if not is_two_decimal(getattr(self, name)):
                raise ValueError(f"{name} is not rounded to 2 decimals")

        if [h.hour for h in self.hourly_sales] != list(range(HOURS_PER_DAY)):
            raise ValueError("hourlySales must hold exactly hours 0-23 in order")

        for entry in self.payment_breakdown:
            if entry.order_count > self.total_orders:
                raise ValueError(f"paymentBreakdown[{entry.method}] counts more orders than the report")
        platform_orders = sum(p.order_count for p in self.delivery_platform_breakdown)
        if platform_orders > self.total_orders:
            raise ValueError("deliveryPlatformBreakdown counts more orders than the report")

        if abs(self.order_completion_rate + self.order_cancellation_rate - 100) > 1e-6:
            raise ValueError("completion and cancellation rates must add up to 100")

        if not PEAK_HOUR_RE.match(self.peak_hour):
            raise ValueError(f"peakHour '{self.peak_hour}' is not formatted as '<hour>:00'")

        if self.start_date_time >= self.end_date_time:
            raise ValueError("report window is empty")
        return self


class SavedEODReport(EODReportData):
    id: str
    report_number: Optional[str] = None
    report_date: date
    report_type: str
    generated_by: str
    generated_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool


class EODReportHistory(CamelModel):
    reports: List[SavedEODReport]
    pagination: Pagination


# --- Ответы API отчётов ---

class EODReportResponse(CamelModel):
    success: bool = True
    data: EODReportData
    message: str
    saved_to_database: bool
    saved_report_id: Optional[str] = None
    generated_by: str
    parameters: Optional[Dict[str, Any]] = None


class EODHistoryResponse(CamelModel):
    success: bool = True
    data: List[SavedEODReport]
    pagination: Pagination
    message: str = "EOD reports retrieved successfully"


class SavedEODReportResponse(CamelModel):
    success: bool = True
    data: SavedEODReport


class NextReportNumber(CamelModel):
    next_report_number: str


class NextReportNumberResponse(CamelModel):
    success: bool = True
    data: NextReportNumber


# --- Заказы ---

class OrderCreate(CamelModel):
    customer_name: Optional[str] = Field(default=None, max_length=255)
    items: List[OrderItemData] = Field(min_length=1)
    total_amount: Decimal = Field(ge=0)
    payment_method: PaymentMethod
    delivery_platform: Optional[DeliveryPlatform] = None
    cash_amount: Optional[Decimal] = Field(default=None, ge=0)
    card_amount: Optional[Decimal] = Field(default=None, ge=0)
    cash_received: Optional[Decimal] = Field(default=None, ge=0)
    change_amount: Optional[Decimal] = Field(default=None, ge=0)
    created_by: str = Field(min_length=1, max_length=255)

    @model_validator(mode="after")
    def check_tender(self):
        if self.payment_method == "delivery" and not self.delivery_platform:
            raise ValueError("deliveryPlatform is required for delivery orders")
        if self.payment_method != "delivery" and self.delivery_platform:
            raise ValueError("deliveryPlatform is only allowed for delivery orders")
        if self.payment_method == "mixed" and (self.cash_amount is None or self.card_amount is None):
            raise ValueError("cashAmount and cardAmount are required for mixed payments")
        if self.payment_method == "mixed" and self.cash_amount + self.card_amount != self.total_amount:
            raise ValueError("cashAmount and cardAmount must add up to totalAmount for mixed payments")
        return self


class OrderResponse(CamelModel):
    id: str
    order_number: str
    daily_serial: Optional[str] = None
    serial_date: Optional[date] = None
    status: str


class OrderCancel(CamelModel):
    canceled_by: str = Field(min_length=1, max_length=255)
    reason: Optional[str] = Field(default=None, max_length=1000)
