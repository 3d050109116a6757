import json
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from datetime import datetime, date
from typing import Any, AsyncGenerator, Dict
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from psycopg.types.json import set_json_dumps

from rentbill.config import settings

logger = logging.getLogger(__name__)


class BillJSONEncoder(json.JSONEncoder):
    """Encodes charge lists and document payloads stored in JSON columns."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            # Whole rupee amounts stay integers in stored charge lists
            if obj == obj.to_integral_value():
                return int(obj)
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def custom_json_dumps(obj):
    """JSON dumps shared by psycopg and SQLite JSON columns."""
    return json.dumps(obj, cls=BillJSONEncoder)


set_json_dumps(custom_json_dumps)


def resolve_database_url(url: str) -> str:
    """Route plain and asyncpg Postgres URLs through the psycopg driver."""
    for prefix in ("postgresql+asyncpg://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "echo": settings.DEBUG,
        "json_serializer": custom_json_dumps,
    }
    if url.startswith("sqlite"):
        # No pool tuning for SQLite
        options["connect_args"] = {"check_same_thread": False}
        return options

    options.update(
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        connect_args={"connect_timeout": 30},
    )
    return options


database_url = resolve_database_url(settings.DATABASE_URL)
engine = create_async_engine(database_url, **engine_options(database_url))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits when the endpoint returns."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session():
    """Session for the scheduler and other background work."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables. Migrations remain the source of truth in production."""
    from rentbill import models  # noqa: F401

    logger.info(f"Registered {len(Base.metadata.tables)} tables")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
