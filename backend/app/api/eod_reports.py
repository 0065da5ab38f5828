from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from backend.app.api.deps import get_generated_by, get_report_service
from backend.app.core.constants import HISTORY_DEFAULT_LIMIT
from backend.app.core.exceptions import ReportValidationError, ServiceError
from backend.app.core.limiter import limiter
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.schemas import (
    EODHistoryResponse,
    EODReportResponse,
    NextReportNumber,
    NextReportNumberResponse,
    SavedEODReportResponse,
)
from backend.app.services.eod_reports import EODReportService, date_range_for_preset

router = APIRouter()
logger = get_logger(__name__)


def _eod_rate_limit() -> str:
    return get_settings().EOD_RATE_LIMIT


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    if isinstance(e, ReportValidationError):
        raise HTTPException(status_code=e.status_code, detail={"message": e.message, "errors": e.errors})
    raise HTTPException(status_code=e.status_code, detail=e.message)


async def _generate(
    service: EODReportService,
    payload: Any,
    generated_by: str,
    parameters: Optional[Dict[str, Any]] = None,
) -> EODReportResponse:
    try:
        report, saved_id = await service.generate(payload, generated_by)
    except ServiceError as e:
        logger.warning("EOD report generation failed", error=e.message, status_code=e.status_code)
        _handle_service_error(e)

    message = "EOD report generated and saved successfully" if saved_id else "EOD report generated successfully"
    return EODReportResponse(
        data=report,
        message=message,
        saved_to_database=saved_id is not None,
        saved_report_id=saved_id,
        generated_by=generated_by,
        parameters=parameters,
    )


# --- 1. ФОРМИРОВАНИЕ ОТЧЁТА ---
@router.post("", response_model=EODReportResponse, response_model_by_alias=True)
@limiter.limit(_eod_rate_limit)
async def generate_eod_report(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(None),
    service: EODReportService = Depends(get_report_service),
    generated_by: str = Depends(get_generated_by),
):
    """
    Build an end-of-day report for the requested window.

    The body is validated by the service, so a bad window is a 400 with
    field-level errors rather than a 422.
    """
    return await _generate(service, payload, generated_by)


@router.get("", response_model=EODReportResponse, response_model_by_alias=True)
@limiter.limit(_eod_rate_limit)
async def generate_eod_report_for_preset(
    request: Request,
    preset: str = Query("today"),
    save: bool = Query(False),
    service: EODReportService = Depends(get_report_service),
    generated_by: str = Depends(get_generated_by),
):
    """Quick report for today, yesterday or the last 7 days in the report timezone."""
    try:
        start, end = date_range_for_preset(preset, datetime.now(timezone.utc), service.tz)
    except ServiceError as e:
        _handle_service_error(e)

    payload = {"startDateTime": start, "endDateTime": end, "saveToDatabase": save}
    return await _generate(service, payload, generated_by, parameters={"preset": preset, "save": save})


# --- 2. ИСТОРИЯ ОТЧЁТОВ ---
@router.get("/history", response_model=EODHistoryResponse, response_model_by_alias=True)
async def get_eod_report_history(
    page: int = Query(1),
    limit: int = Query(HISTORY_DEFAULT_LIMIT),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: EODReportService = Depends(get_report_service),
):
    try:
        history = await service.get_history(page=page, limit=limit, start_date=start_date, end_date=end_date)
    except ServiceError as e:
        _handle_service_error(e)
    return EODHistoryResponse(data=history.reports, pagination=history.pagination)


@router.get("/next-number", response_model=NextReportNumberResponse, response_model_by_alias=True)
async def get_next_eod_report_number(service: EODReportService = Depends(get_report_service)):
    """Number the next saved report would get. Does not consume it."""
    try:
        next_number = await service.preview_next_report_number()
    except ServiceError as e:
        _handle_service_error(e)
    return NextReportNumberResponse(data=NextReportNumber(next_report_number=next_number))


# --- 3. ОТДЕЛЬНЫЙ ОТЧЁТ ---
@router.get("/{report_id}", response_model=SavedEODReportResponse, response_model_by_alias=True)
async def get_eod_report(report_id: str, service: EODReportService = Depends(get_report_service)):
    try:
        report = await service.get_report(report_id)
    except ServiceError as e:
        _handle_service_error(e)
    return SavedEODReportResponse(data=report)


@router.delete("/{report_id}")
async def delete_eod_report(report_id: str, service: EODReportService = Depends(get_report_service)):
    try:
        await service.delete_report(report_id)
    except ServiceError as e:
        _handle_service_error(e)
    return {"success": True, "message": "EOD report deleted successfully"}
