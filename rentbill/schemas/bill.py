"""Bill schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from rentbill.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema


class ChargeLine(BaseModel):
    """One bill line item. Discount lines carry a negative amount."""
    title: str = Field(..., min_length=1, max_length=100)
    amount: Decimal


class BillTotals(BaseModel):
    """Non-negative totals snapshot of a bill."""
    rent: Decimal = Field(Decimal("0"), ge=0)
    electricity: Decimal = Field(Decimal("0"), ge=0)
    processing_fee: Decimal = Field(Decimal("0"), ge=0)
    additional_amount: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)


class BillCreate(BaseCreateSchema):
    """Create a bill from explicit line items."""
    tenant_id: UUID
    room_id: UUID
    billing_month: Union[date, str] = Field(..., description="YYYY-MM or any date in the month")
    charges: List[ChargeLine] = Field(..., min_length=1)
    totals: Optional[BillTotals] = None
    total_amount: Optional[int] = Field(None, description="Derived from charges when omitted")
    due_date: Optional[date] = None
    notes: Optional[str] = None
    payment_link: Optional[str] = None


class BillGenerateRequest(BaseCreateSchema):
    """Compute a prorated bill for one tenant-month and create it."""
    tenant_id: UUID
    room_id: UUID
    billing_month: Union[date, str] = Field(..., description="YYYY-MM or any date in the month")
    electricity: Decimal = Field(Decimal("0"), ge=0)
    additional_amount: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    include_processing_fee: bool = True
    due_date: Optional[date] = None
    notes: Optional[str] = None
    payment_link: Optional[str] = None


class BillUpdate(BaseUpdateSchema):
    """Partial bill update. Financial fields are rejected once the bill is paid."""
    charges: Optional[List[ChargeLine]] = None
    totals: Optional[BillTotals] = None
    total_amount: Optional[int] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    payment_link: Optional[str] = None
    payment_method: Optional[str] = None
    razorpay_order_id: Optional[str] = None


class BillPayRequest(BaseModel):
    """Payment confirmation for a bill."""
    payment_ref: Optional[str] = Field(None, max_length=100, description="Receipt or gateway reference")
    method: str = Field("UPI", max_length=50)
    paid_at: Optional[datetime] = None


class BillResponse(BaseResponseSchema):
    id: UUID
    tenant_id: UUID
    room_id: UUID
    building_id: UUID
    billing_month: date
    charges: List[ChargeLine]
    totals: BillTotals
    total_amount: int
    due_date: Optional[date] = None
    payment_status: str
    is_paid: bool
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    razorpay_order_id: Optional[str] = None
    razorpay_payment_link_id: Optional[str] = None
    pdf_url: Optional[str] = None
    payment_link: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BillListResponse(BaseModel):
    items: List[BillResponse]
    total: int


class BillDocument(BaseModel):
    """
    Denormalized bill snapshot handed to the document renderer and notifiers.

    Tenant, room and building fields are copied at dispatch time so rendering
    never needs a database session.
    """
    bill_id: UUID
    billing_month: date
    tenant_code: str
    tenant_name: str
    tenant_phone: Optional[str] = None
    tenant_email: Optional[str] = None
    room_number: str
    building_name: str
    building_address: Optional[str] = None
    charges: List[ChargeLine]
    totals: BillTotals
    total_amount: int
    due_date: Optional[date] = None
    payment_status: str
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    payment_link: str
    download_link: str
    currency: str = "INR"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "PAID"

    @property
    def month_label(self) -> str:
        return self.billing_month.strftime("%B %Y")


class MonthlyBillingRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


class BillingOutcome(BaseModel):
    """Result of billing one tenant in a batch run."""
    tenant_id: UUID
    tenant_code: str
    room_id: UUID
    status: str = Field(..., description="created, skipped or failed")
    bill_id: Optional[UUID] = None
    total_amount: Optional[int] = None
    error: Optional[str] = None


class MonthlyBillingResponse(BaseModel):
    year: int
    month: int
    created: int
    skipped: int
    failed: int
    outcomes: List[BillingOutcome]
