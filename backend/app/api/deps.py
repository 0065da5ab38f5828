from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.database import async_session
from backend.app.core.database_read_replica import read_replica_session
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.services.daily_serial import DailySerialService
from backend.app.services.eod_reports import EODReportService
from backend.app.services.orders import OrderService
from backend.app.services.sequences import order_number_sequence

logger = get_logger(__name__)


# Эта функция выдает сессию базы данных для каждого запроса
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


# Фабрики сессий: сервис отчётов открывает отдельную сессию на каждый запрос к БД
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


def get_read_session_factory() -> async_sessionmaker[AsyncSession]:
    return read_replica_session


async def require_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    """Require admin token. If ADMIN_SECRET is not configured, reject all requests (fail-closed)."""
    admin_secret = get_settings().ADMIN_SECRET
    if not admin_secret:
        logger.warning("ADMIN_SECRET not configured, admin endpoints are blocked")
        raise HTTPException(status_code=503, detail="Admin panel not configured (ADMIN_SECRET missing)")
    if not x_admin_token or x_admin_token != admin_secret:
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


async def get_generated_by(x_admin_user: Optional[str] = Header(None, alias="X-Admin-User")) -> str:
    """Name recorded as the author of a saved report."""
    return (x_admin_user or "").strip() or "admin"


def get_report_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    read_session_factory: async_sessionmaker[AsyncSession] = Depends(get_read_session_factory),
) -> EODReportService:
    return EODReportService.from_settings(session_factory, read_session_factory)


def get_order_service(
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> OrderService:
    settings = get_settings()
    return OrderService(
        session,
        order_numbers=order_number_sequence(session_factory, settings.ORDER_NUMBER_PREFIX),
        serials=DailySerialService(session_factory, tz=settings.report_tz),
    )
