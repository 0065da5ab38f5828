# backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backend.app.services.eod_reports import (
    EODReportService,
    date_range_for_preset,
    render_report_summary,
)
from backend.app.services.orders import (
    OrderService,
    OrderServiceError,
    OrderNotFoundError,
    InvalidOrderStatusError,
)
from backend.app.services.daily_serial import DailySerialService
from backend.app.services.order_source import OrderSource, SqlOrderSource
from backend.app.services.sequences import (
    SequenceGenerator,
    extract_number,
    is_valid_number,
    order_number_sequence,
    report_number_sequence,
)

__all__ = [
    # EOD reports
    "EODReportService",
    "date_range_for_preset",
    "render_report_summary",
    # Order service
    "OrderService",
    "OrderServiceError",
    "OrderNotFoundError",
    "InvalidOrderStatusError",
    # Daily serial
    "DailySerialService",
    # Order source
    "OrderSource",
    "SqlOrderSource",
    # Sequences
    "SequenceGenerator",
    "extract_number",
    "is_valid_number",
    "order_number_sequence",
    "report_number_sequence",
]
