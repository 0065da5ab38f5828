"""
Read replica support for database queries.
Report generation reads orders and cancellations through this factory,
so heavy end-of-day aggregation can be pointed at a replica.
"""
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from backend.app.core.settings import get_settings

_settings = get_settings()

# Read replica URL (optional, falls back to main DB if not set)
if _settings.DB_READ_REPLICA_URL:
    read_replica_engine = create_async_engine(
        url=_settings.DB_READ_REPLICA_URL,
        echo=False,
        pool_size=_settings.DB_POOL_SIZE,
        max_overflow=_settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=_settings.DB_POOL_RECYCLE,
        pool_timeout=30,
    )
    read_replica_session = async_sessionmaker(read_replica_engine, expire_on_commit=False)
else:
    # Fallback to main database if no read replica configured
    from backend.app.core.database import engine, async_session
    read_replica_engine = engine
    read_replica_session = async_session

