"""Building, room and tenant schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rentbill.schemas.base import BaseCreateSchema, BaseResponseSchema
from rentbill.schemas.bill import ChargeLine


class BuildingCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None
    manager_name: Optional[str] = None
    contact_phone: Optional[str] = None


class BuildingResponse(BaseResponseSchema):
    id: UUID
    name: str
    address: Optional[str] = None
    manager_name: Optional[str] = None
    contact_phone: Optional[str] = None
    created_at: datetime


class RoomCreate(BaseCreateSchema):
    building_id: UUID
    number: str = Field(..., min_length=1, max_length=20)
    floor: Optional[str] = None
    capacity: int = Field(1, ge=1)
    monthly_rent: Decimal = Field(Decimal("0"), ge=0)
    additional_charges: List[ChargeLine] = Field(default_factory=list)


class RoomResponse(BaseResponseSchema):
    id: UUID
    room_code: str
    building_id: UUID
    number: str
    floor: Optional[str] = None
    capacity: int
    monthly_rent: Decimal
    additional_charges: List[ChargeLine]
    is_booked: bool
    created_at: datetime


class TenancyResponse(BaseResponseSchema):
    """Tenancy history snapshot."""
    id: UUID
    tenant_id: Optional[UUID] = None
    tenant_code: str
    full_name: str
    booking_date: datetime
    leaving_date: Optional[datetime] = None


class TenantCreate(BaseCreateSchema):
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None
    id_proof_type: Optional[str] = None
    id_proof_number: Optional[str] = None
    number_of_persons: int = Field(1, ge=1)
    rent_amount: Optional[Decimal] = Field(None, ge=0)
    advanced_amount: Decimal = Field(Decimal("0"), ge=0)
    pending_amount: Decimal = Field(Decimal("0"), ge=0)
    due_date: Optional[date] = None
    move_in_date: Optional[datetime] = None
    room_id: Optional[UUID] = None


class TenantResponse(BaseResponseSchema):
    id: UUID
    tenant_code: str
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    room_id: Optional[UUID] = None
    move_in_date: datetime
    move_out_date: Optional[datetime] = None
    rent_amount: Optional[Decimal] = None
    advanced_amount: Decimal
    last_payment_amount: Optional[Decimal] = None
    last_payment_date: Optional[datetime] = None
    last_payment_method: Optional[str] = None
    last_payment_receipt: Optional[str] = None
    pending_amount: Decimal
    due_date: Optional[date] = None


class TenantPaymentResponse(BaseResponseSchema):
    id: UUID
    bill_id: Optional[UUID] = None
    amount: Decimal
    paid_on: datetime
    method: str
    receipt_number: Optional[str] = None
    note: Optional[str] = None


class TenantDetailResponse(TenantResponse):
    payments: List[TenantPaymentResponse] = Field(default_factory=list)


class RoomDetailResponse(RoomResponse):
    tenants: List[TenantResponse] = Field(default_factory=list)
    history: List[TenancyResponse] = Field(default_factory=list)


class AssignTenantRequest(BaseModel):
    tenant_id: UUID
    booking_date: Optional[datetime] = None


class MoveOutRequest(BaseModel):
    leaving_date: Optional[datetime] = None


class OccupancyEntry(BaseModel):
    """Resolved occupancy and prorated rent of one tenant."""
    tenant_id: UUID
    tenant_code: str
    full_name: str
    occupied_start: date
    occupied_end: date
    elapsed_days: int
    total_days: int
    rent_amount: Decimal
    prorated_rent: Decimal


class RoomOccupancyResponse(BaseModel):
    room_id: UUID
    billing_month: date
    tenants: List[OccupancyEntry]
