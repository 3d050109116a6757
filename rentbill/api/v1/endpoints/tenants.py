"""Tenant API endpoints."""
import uuid
from typing import List, Optional

from fastapi import APIRouter, status

from rentbill.api.deps import DB
from rentbill.schemas.tenancy import (
    MoveOutRequest,
    TenantCreate,
    TenantDetailResponse,
    TenantResponse,
)
from rentbill.services.tenancy_service import TenancyService

router = APIRouter()


@router.get("", response_model=List[TenantResponse])
async def list_tenants(
    db: DB,
    room_id: Optional[uuid.UUID] = None,
    active_only: bool = False,
):
    return await TenancyService(db).list_tenants(room_id=room_id, active_only=active_only)


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(data: TenantCreate, db: DB):
    """Create a tenant (code T001, T002, ...) and optionally assign a room."""
    return await TenancyService(db).create_tenant(data)


@router.get("/{tenant_id}", response_model=TenantDetailResponse)
async def get_tenant(tenant_id: uuid.UUID, db: DB):
    """Tenant with its payment ledger."""
    return await TenancyService(db).get_tenant(tenant_id, with_payments=True)


@router.post("/{tenant_id}/move-out", response_model=TenantResponse)
async def move_out_tenant(tenant_id: uuid.UUID, data: MoveOutRequest, db: DB):
    return await TenancyService(db).move_out(tenant_id, leaving_date=data.leaving_date)
