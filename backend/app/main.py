import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from backend.app.core.limiter import limiter
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api import eod_reports, orders
from backend.app.api.deps import get_session, require_admin_token
from backend.app.core.database import engine
from backend.app.core.database_read_replica import read_replica_engine
from backend.app.core.logging import setup_logging, get_logger
from backend.app.core.settings import get_settings
from backend.app.core.metrics import PrometheusMiddleware, get_metrics_response

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# Initialize structured logging
# Use JSON format in production
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

# Log configuration status
logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    report_timezone=settings.REPORT_TIMEZONE or "server-local",
    vat_rate=settings.VAT_RATE,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: log
    - Shutdown: dispose database engines
    """
    logger.info("Application starting up", version="1.0.0")
    yield
    logger.info("Application shutting down")
    if read_replica_engine is not engine:
        await read_replica_engine.dispose()
    await engine.dispose()


app = FastAPI(title="POS End-of-Day Reports", lifespan=lifespan)

# Use shared limiter (routers use the same instance for @limiter.limit)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - ДОЛЖЕН БЫТЬ ПЕРВЫМ (выполняется последним при ответе)
ALLOWED_ORIGINS = settings.allowed_origins_list
logger.info("CORS configuration", allowed_origins=ALLOWED_ORIGINS, is_production=settings.is_production)
if not ALLOWED_ORIGINS:
    # In production, require ALLOWED_ORIGINS to be set
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    # Development fallback
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Add Prometheus metrics middleware AFTER CORS (выполняется раньше при ответе)
app.add_middleware(PrometheusMiddleware)

# Подключаем роутеры; все требуют X-Admin-Token
app.include_router(
    eod_reports.router,
    prefix="/admin/reports/eod",
    tags=["eod-reports"],
    dependencies=[Depends(require_admin_token)],
)
app.include_router(
    orders.router,
    prefix="/orders",
    tags=["orders"],
    dependencies=[Depends(require_admin_token)],
)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
        "checks": {
            "database": "ok",
        }
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """
    Prometheus metrics endpoint.

    Args:
        openmetrics: If True, return OpenMetrics format

    Returns:
        Metrics in Prometheus or OpenMetrics format
    """
    return get_metrics_response(openmetrics=openmetrics)
