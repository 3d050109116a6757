"""Building and room API endpoints."""
import uuid
from typing import List, Optional

from fastapi import APIRouter, Query, status

from rentbill.api.deps import DB
from rentbill.schemas.tenancy import (
    AssignTenantRequest,
    BuildingCreate,
    BuildingResponse,
    RoomCreate,
    RoomDetailResponse,
    RoomOccupancyResponse,
    RoomResponse,
)
from rentbill.services.tenancy_service import TenancyService

building_router = APIRouter()
router = APIRouter()


@building_router.get("", response_model=List[BuildingResponse])
async def list_buildings(db: DB):
    return await TenancyService(db).list_buildings()


@building_router.post("", response_model=BuildingResponse, status_code=status.HTTP_201_CREATED)
async def create_building(data: BuildingCreate, db: DB):
    return await TenancyService(db).create_building(data)


@building_router.get("/{building_id}", response_model=BuildingResponse)
async def get_building(building_id: uuid.UUID, db: DB):
    return await TenancyService(db).get_building(building_id)


@router.get("", response_model=List[RoomResponse])
async def list_rooms(
    db: DB,
    building_id: Optional[uuid.UUID] = None,
    is_booked: Optional[bool] = None,
):
    return await TenancyService(db).list_rooms(building_id=building_id, is_booked=is_booked)


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(data: RoomCreate, db: DB):
    """Create a room; its code (R001, R002, ...) is assigned automatically."""
    return await TenancyService(db).create_room(data)


@router.get("/{room_id}", response_model=RoomDetailResponse)
async def get_room(room_id: uuid.UUID, db: DB):
    """Room with its current tenants and tenancy history."""
    return await TenancyService(db).get_room(room_id, with_details=True)


@router.post("/{room_id}/tenants", response_model=RoomDetailResponse)
async def assign_tenant(room_id: uuid.UUID, data: AssignTenantRequest, db: DB):
    service = TenancyService(db)
    return await service.assign_tenant(room_id, data.tenant_id, booking_date=data.booking_date)


@router.delete("/{room_id}/tenants/{tenant_id}", response_model=RoomDetailResponse)
async def remove_tenant(room_id: uuid.UUID, tenant_id: uuid.UUID, db: DB):
    return await TenancyService(db).remove_tenant(room_id, tenant_id)


@router.get("/{room_id}/occupancy", response_model=RoomOccupancyResponse)
async def get_room_occupancy(
    room_id: uuid.UUID,
    db: DB,
    month: str = Query(..., description="YYYY-MM"),
):
    """Tenants billable in the month with their prorated rent."""
    return await TenancyService(db).room_occupancy(room_id, month)
