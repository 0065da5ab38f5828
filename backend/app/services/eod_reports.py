# backend/app/services/eod_reports.py
"""
End-of-day report service - builds, saves and serves EOD reports.
"""
import asyncio
import json
import math
import time
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.constants import (
    DATE_PRESETS,
    DEFAULT_PEAK_HOUR,
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
    REPORT_TYPE_EOD,
)
from backend.app.core.exceptions import (
    InternalConsistencyError,
    PersistenceError,
    ReportNotFoundError,
    ReportValidationError,
    UpstreamFetchError,
)
from backend.app.core.logging import bind_report_window, clear_report_window, get_logger
from backend.app.core.metrics import eod_report_generation_seconds, eod_reports_generated_total
from backend.app.core.money import format_currency, format_percentage, to_storage
from backend.app.core.settings import Settings, get_settings
from backend.app.models.eod_report import EODReport
from backend.app.schemas import (
    CanceledOrderData,
    EODReportData,
    EODReportHistory,
    EODReportRequest,
    OrderData,
    Pagination,
    SavedEODReport,
)
from backend.app.services.daily_serial import DailySerialService
from backend.app.services.eod_calculations import (
    calculate_average_order_value,
    calculate_best_selling_items,
    calculate_completion_rates,
    calculate_delivery_platform_breakdown,
    calculate_hourly_sales,
    calculate_payment_breakdown,
    calculate_tender_totals,
    calculate_total_revenue,
    calculate_vat,
    find_peak_hour,
)
from backend.app.services.order_source import OrderSource, SqlOrderSource, _as_utc
from backend.app.services.sequences import (
    SequenceGenerator,
    extract_number,
    is_valid_number,
    report_number_sequence,
)

logger = get_logger(__name__)

SerialReset = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_details(e: ValidationError) -> List[dict]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in e.errors()
    ]


def _as_date(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


def _dump_rows(rows: Sequence[BaseModel]) -> str:
    return json.dumps([row.model_dump(by_alias=True, mode="json") for row in rows])


def _load_rows(value: Optional[str]) -> list:
    if not value:
        return []
    return json.loads(value)


def date_range_for_preset(
    preset: str,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Tuple[datetime, datetime]:
    """
    Report window for a quick preset, anchored at local midnight in `tz`
    (server local time when tz is None).
    """
    local_now = now.astimezone(tz)
    today_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    if preset == "today":
        return today_start, local_now
    if preset == "yesterday":
        return today_start - timedelta(days=1), today_start
    if preset == "last-7-days":
        return today_start - timedelta(days=7), local_now
    raise ReportValidationError(
        f"Unknown preset '{preset}'",
        errors=[{"field": "preset", "message": f"expected one of: {', '.join(DATE_PRESETS)}"}],
    )


def validate_report_number(value: Optional[str], prefix: str = "EOD") -> bool:
    return is_valid_number(prefix, value)


def extract_report_number(value: Optional[str], prefix: str = "EOD") -> Optional[int]:
    return extract_number(prefix, value)


def render_report_summary(report: EODReportData, report_number: Optional[str] = None) -> str:
    """Plain-text summary for logs, e-mails and the cron script."""
    title = f"End of Day Report {report_number}" if report_number else "End of Day Report"
    lines = [
        title,
        f"Period: {report.start_date_time.isoformat()} - {report.end_date_time.isoformat()}",
        f"Orders: {report.total_orders} (canceled: {report.total_cancelled_orders})",
        f"Revenue: {format_currency(report.total_revenue)}",
        f"  VAT: {format_currency(report.vat_amount)}  Net: {format_currency(report.total_without_vat)}",
        f"  Cash: {format_currency(report.total_cash_orders)}  Card: {format_currency(report.total_card_orders)}",
        f"Average order: {format_currency(report.average_order_value)}",
        f"Peak hour: {report.peak_hour}",
        f"Completion rate: {format_percentage(report.order_completion_rate)}",
    ]
    for entry in report.payment_breakdown:
        lines.append(
            f"  {entry.method}: {entry.order_count} orders, "
            f"{format_currency(entry.total_amount)} ({format_percentage(entry.percentage)})"
        )
    for platform in report.delivery_platform_breakdown:
        lines.append(
            f"  {platform.platform}: {platform.order_count} orders, "
            f"{format_currency(platform.total_amount)} ({format_percentage(platform.percentage)})"
        )
    for item in report.best_selling_items[:5]:
        lines.append(f"  {item.item_name} x{item.quantity} = {format_currency(item.total_revenue)}")
    return "\n".join(lines)


class EODReportService:
    """Service class for end-of-day report operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        order_source: Optional[OrderSource] = None,
        report_numbers: Optional[SequenceGenerator] = None,
        report_number_preview: Optional[SequenceGenerator] = None,
        serial_reset: Optional[SerialReset] = None,
        tz: Optional[tzinfo] = None,
        vat_rate: float = 0.15,
        best_sellers_limit: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.order_source = order_source or SqlOrderSource(session_factory)
        self.report_numbers = report_numbers or report_number_sequence(session_factory)
        self.report_number_preview = report_number_preview or report_number_sequence(session_factory, advance=False)
        self.serial_reset = serial_reset
        self.tz = tz
        self.vat_rate = vat_rate
        self.best_sellers_limit = best_sellers_limit
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        read_session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        settings: Optional[Settings] = None,
    ) -> "EODReportService":
        settings = settings or get_settings()
        tz = settings.report_tz
        return cls(
            session_factory=session_factory,
            order_source=SqlOrderSource(read_session_factory or session_factory),
            report_numbers=report_number_sequence(session_factory, settings.EOD_REPORT_PREFIX),
            report_number_preview=report_number_sequence(session_factory, settings.EOD_REPORT_PREFIX, advance=False),
            serial_reset=DailySerialService(session_factory, tz=tz).reset_daily_serial,
            tz=tz,
            vat_rate=settings.VAT_RATE,
            best_sellers_limit=settings.BEST_SELLERS_LIMIT,
        )

    # --- Generation ---

    @staticmethod
    def validate_request(payload: Union[EODReportRequest, dict, None]) -> EODReportRequest:
        if isinstance(payload, EODReportRequest):
            return payload
        try:
            return EODReportRequest.model_validate(payload or {})
        except ValidationError as e:
            raise ReportValidationError("Invalid EOD report request", errors=_error_details(e)) from e

    async def _fetch(self, start: datetime, end: datetime) -> Tuple[List[OrderData], List[CanceledOrderData]]:
        """Run both fetches concurrently and wait for both before reporting failure."""
        orders, cancellations = await asyncio.gather(
            self.order_source.fetch_orders_in_range(start, end),
            self.order_source.fetch_canceled_orders_in_range(start, end),
            return_exceptions=True,
        )
        for source, result in (("orders", orders), ("canceled orders", cancellations)):
            if isinstance(result, UpstreamFetchError):
                raise result
            if isinstance(result, Exception):
                raise UpstreamFetchError(source, str(result)) from result
            if isinstance(result, BaseException):
                raise result
        return orders, cancellations

    def build_report(
        self,
        orders: Sequence[OrderData],
        cancellations: Sequence[CanceledOrderData],
        start: datetime,
        end: datetime,
    ) -> EODReportData:
        """Run every calculator over the fetched window and check the result."""
        total_revenue = calculate_total_revenue(orders)
        tender = calculate_tender_totals(orders)
        vat_amount, total_without_vat = calculate_vat(total_revenue, self.vat_rate)
        hourly_sales = calculate_hourly_sales(orders, self.tz)
        completion_rate, cancellation_rate = calculate_completion_rates(orders, cancellations)

        data = {
            "start_date_time": start,
            "end_date_time": end,
            "report_generated_at": self.clock(),
            "total_revenue": total_revenue,
            "total_cash_orders": tender.cash_total,
            "total_card_orders": tender.card_total,
            "total_cash_received": tender.cash_received,
            "total_change_given": tender.change_given,
            "total_with_vat": total_revenue,
            "total_without_vat": total_without_vat,
            "vat_amount": vat_amount,
            "total_cancelled_orders": len(cancellations),
            "total_orders": len(orders),
            "completed_orders": len(orders),
            # The order source never returns pending orders
            "pending_orders": 0,
            "average_order_value": calculate_average_order_value(total_revenue, len(orders)),
            "payment_breakdown": calculate_payment_breakdown(orders),
            "delivery_platform_breakdown": calculate_delivery_platform_breakdown(orders),
            "best_selling_items": calculate_best_selling_items(orders, self.best_sellers_limit),
            "peak_hour": find_peak_hour(hourly_sales),
            "hourly_sales": hourly_sales,
            "order_completion_rate": completion_rate,
            "order_cancellation_rate": cancellation_rate,
        }
        try:
            return EODReportData.model_validate(data)
        except ValidationError as e:
            logger.error("Assembled EOD report failed validation", errors=_error_details(e))
            raise InternalConsistencyError(str(e)) from e

    async def _reset_daily_serial(self) -> None:
        if self.serial_reset is None:
            return
        try:
            await self.serial_reset()
        except Exception as e:
            logger.error("Daily serial reset failed; report is unaffected", error=str(e))

    async def generate_report(self, request: Union[EODReportRequest, dict]) -> EODReportData:
        """
        Build the EOD report for the request window.

        Raises:
            ReportValidationError: bad request, raised before any query runs
            UpstreamFetchError: orders or cancellations could not be read
            InternalConsistencyError: the assembled report broke its schema
        """
        validated = self.validate_request(request)
        start, end = validated.start_date_time, validated.end_date_time

        bind_report_window(start, end)
        started = time.perf_counter()
        try:
            orders, cancellations = await self._fetch(start, end)
            report = self.build_report(orders, cancellations, start, end)
            eod_report_generation_seconds.observe(time.perf_counter() - started)
            logger.info(
                "EOD report generated",
                orders=report.total_orders,
                cancellations=report.total_cancelled_orders,
                total_revenue=report.total_revenue,
            )
            await self._reset_daily_serial()
        finally:
            clear_report_window()
        return report

    async def generate(
        self,
        payload: Union[EODReportRequest, dict],
        generated_by: str,
    ) -> Tuple[EODReportData, Optional[str]]:
        """Generate and, when the request asks for it, persist. Returns (report, saved id)."""
        request = self.validate_request(payload)
        report = await self.generate_report(request)
        saved_id = None
        if request.save_to_database:
            saved_id = await self.save_report(report, generated_by)
        eod_reports_generated_total.labels(saved="true" if saved_id else "false").inc()
        return report, saved_id

    # --- Persistence ---

    async def save_report(self, report: EODReportData, generated_by: str) -> str:
        """
        Store the report under the next report number and return its id.

        Raises:
            SequenceExhaustedError: no tier could issue a report number
            PersistenceError: the insert failed
        """
        cash_orders_count = next((p.order_count for p in report.payment_breakdown if p.method == "cash"), 0)
        card_orders_count = next((p.order_count for p in report.payment_breakdown if p.method == "card"), 0)

        report_number = await self.report_numbers.next_number()
        report_id = str(uuid.uuid4())

        row = EODReport(
            id=report_id,
            report_number=report_number,
            report_date=report.start_date_time.astimezone(timezone.utc).date(),
            report_type=REPORT_TYPE_EOD,
            start_date_time=report.start_date_time,
            end_date_time=report.end_date_time,
            total_orders=report.total_orders,
            completed_orders=report.completed_orders,
            cancelled_orders=report.total_cancelled_orders,
            pending_orders=report.pending_orders,
            cash_orders_count=cash_orders_count,
            card_orders_count=card_orders_count,
            total_revenue=to_storage(report.total_revenue),
            total_with_vat=to_storage(report.total_with_vat),
            total_without_vat=to_storage(report.total_without_vat),
            vat_amount=to_storage(report.vat_amount),
            total_cash_orders=to_storage(report.total_cash_orders),
            total_card_orders=to_storage(report.total_card_orders),
            total_cash_received=to_storage(report.total_cash_received),
            total_change_given=to_storage(report.total_change_given),
            average_order_value=to_storage(report.average_order_value),
            peak_hour=report.peak_hour,
            order_completion_rate=to_storage(report.order_completion_rate),
            order_cancellation_rate=to_storage(report.order_cancellation_rate),
            payment_breakdown=_dump_rows(report.payment_breakdown),
            delivery_platform_breakdown=_dump_rows(report.delivery_platform_breakdown),
            best_selling_items=_dump_rows(report.best_selling_items),
            hourly_sales=_dump_rows(report.hourly_sales),
            generated_by=generated_by,
            generated_at=report.report_generated_at,
        )

        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to save EOD report", report_number=report_number, error=str(e))
            raise PersistenceError(f"Failed to save EOD report: {e}") from e

        logger.info("EOD report saved", report_id=report_id, report_number=report_number, generated_by=generated_by)
        return report_id

    async def preview_next_report_number(self) -> str:
        """Next report number as it would be issued now, without consuming it."""
        return await self.report_number_preview.next_number()

    # --- Reading back ---

    @staticmethod
    def row_to_report(row: EODReport) -> SavedEODReport:
        try:
            return SavedEODReport(
                id=row.id,
                report_number=row.report_number,
                report_date=row.report_date,
                report_type=row.report_type or REPORT_TYPE_EOD,
                generated_by=row.generated_by,
                generated_at=_as_utc(row.generated_at),
                start_date_time=_as_utc(row.start_date_time),
                end_date_time=_as_utc(row.end_date_time),
                report_generated_at=_as_utc(row.generated_at),
                total_revenue=float(row.total_revenue),
                total_cash_orders=float(row.total_cash_orders),
                total_card_orders=float(row.total_card_orders),
                total_cash_received=float(row.total_cash_received or 0),
                total_change_given=float(row.total_change_given or 0),
                total_with_vat=float(row.total_with_vat),
                total_without_vat=float(row.total_without_vat),
                vat_amount=float(row.vat_amount),
                total_cancelled_orders=row.cancelled_orders,
                total_orders=row.total_orders,
                completed_orders=row.completed_orders,
                pending_orders=row.pending_orders or 0,
                average_order_value=float(row.average_order_value),
                payment_breakdown=_load_rows(row.payment_breakdown),
                delivery_platform_breakdown=_load_rows(row.delivery_platform_breakdown),
                best_selling_items=_load_rows(row.best_selling_items),
                peak_hour=row.peak_hour or DEFAULT_PEAK_HOUR,
                hourly_sales=_load_rows(row.hourly_sales),
                order_completion_rate=float(row.order_completion_rate),
                order_cancellation_rate=float(row.order_cancellation_rate),
            )
        except (ValidationError, ValueError) as e:
            raise InternalConsistencyError(f"stored report {row.id} is unreadable: {e}") from e

    async def get_history(
        self,
        page: int = 1,
        limit: int = HISTORY_DEFAULT_LIMIT,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> EODReportHistory:
        """Saved reports, newest first, optionally filtered by report date (inclusive)."""
        if page < 1 or limit < 1 or limit > HISTORY_MAX_LIMIT:
            raise ReportValidationError(
                "Invalid pagination parameters",
                errors=[{"field": "page/limit", "message": f"page must be >= 1 and limit between 1 and {HISTORY_MAX_LIMIT}"}],
            )

        conditions = []
        if start_date:
            conditions.append(EODReport.report_date >= _as_date(start_date))
        if end_date:
            conditions.append(EODReport.report_date <= _as_date(end_date))

        try:
            async with self.session_factory() as session:
                total_count = (
                    await session.execute(select(func.count(EODReport.id)).where(*conditions))
                ).scalar_one()
                result = await session.execute(
                    select(EODReport)
                    .where(*conditions)
                    .order_by(EODReport.generated_at.desc())
                    .limit(limit)
                    .offset((page - 1) * limit)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load EOD report history: {e}") from e

        total_pages = math.ceil(total_count / limit)
        return EODReportHistory(
            reports=[self.row_to_report(row) for row in rows],
            pagination=Pagination(
                page=page,
                limit=limit,
                total_count=total_count,
                total_pages=total_pages,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )

    async def get_report(self, report_id: str) -> SavedEODReport:
        try:
            async with self.session_factory() as session:
                row = await session.get(EODReport, report_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load EOD report {report_id}: {e}") from e
        if row is None:
            raise ReportNotFoundError(report_id)
        return self.row_to_report(row)

    async def delete_report(self, report_id: str) -> None:
        try:
            async with self.session_factory() as session:
                row = await session.get(EODReport, report_id)
                if row is None:
                    raise ReportNotFoundError(report_id)
                await session.delete(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to delete EOD report", report_id=report_id, error=str(e))
            raise PersistenceError(f"Failed to delete EOD report {report_id}: {e}") from e
        logger.info("EOD report deleted", report_id=report_id)
