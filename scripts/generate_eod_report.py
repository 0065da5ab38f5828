#!/usr/bin/env python3
"""
Generate and save the end-of-day report.

Run daily via cron after closing, e.g.:
    15 0 * * * cd /src && python -m scripts.generate_eod_report --preset yesterday

Prints a plain-text summary of the report. Generating the report also resets
the daily order serial, so the first order of the next business day is 001.
"""
import argparse
import asyncio
import sys
from datetime import datetime, timezone

from backend.app.core.database import async_session, engine
from backend.app.core.database_read_replica import read_replica_session
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import setup_logging, get_logger
from backend.app.core.settings import get_settings
from backend.app.services.eod_reports import (
    EODReportService,
    date_range_for_preset,
    render_report_summary,
)

logger = get_logger(__name__)


async def generate(preset: str, save: bool, generated_by: str) -> int:
    settings = get_settings()
    service = EODReportService.from_settings(async_session, read_replica_session, settings)

    start, end = date_range_for_preset(preset, datetime.now(timezone.utc), settings.report_tz)
    print(f"Generating EOD report for {start.isoformat()} - {end.isoformat()}")

    try:
        report, saved_id = await service.generate(
            {"startDateTime": start, "endDateTime": end, "saveToDatabase": save},
            generated_by,
        )
        report_number = None
        if saved_id:
            saved = await service.get_report(saved_id)
            report_number = saved.report_number
            print(f"Saved report {saved_id}")
    except ServiceError as e:
        logger.error("Scheduled EOD report failed", preset=preset, error=e.message)
        print(f"EOD report failed: {e.message}", file=sys.stderr)
        return 1
    finally:
        await engine.dispose()

    print(render_report_summary(report, report_number))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate the end-of-day report")
    parser.add_argument("--preset", choices=["today", "yesterday", "last-7-days"], default="yesterday")
    parser.add_argument("--no-save", action="store_true", help="print the report without saving it")
    parser.add_argument("--generated-by", default="cron")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(log_level=settings.LOG_LEVEL, json_format=settings.is_production)

    sys.exit(asyncio.run(generate(args.preset, not args.no_save, args.generated_by)))


if __name__ == "__main__":
    main()
