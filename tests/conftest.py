import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rentbill import models  # noqa: F401
from rentbill.database import Base, custom_json_dumps
from rentbill.schemas.tenancy import BuildingCreate, RoomCreate, TenantCreate
from rentbill.services.tenancy_service import TenancyService

from tests.helpers import RecordingDispatcher


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
async def building(db):
    return await TenancyService(db).create_building(
        BuildingCreate(name="Sunrise Residency", address="12 MG Road, Pune")
    )


@pytest.fixture
async def room(db, building):
    return await TenancyService(db).create_room(
        RoomCreate(building_id=building.id, number="101", monthly_rent=Decimal("3000"))
    )


@pytest.fixture
def make_tenant(db):
    """Create a tenant in a room, optionally already moved out."""

    async def _make_tenant(room, move_in, move_out=None, **fields):
        service = TenancyService(db)
        fields.setdefault("full_name", "Asha Verma")
        tenant = await service.create_tenant(
            TenantCreate(room_id=room.id, move_in_date=move_in, **fields)
        )
        if move_out is not None:
            tenant = await service.move_out(tenant.id, leaving_date=move_out)
        return tenant

    return _make_tenant
