"""
Bill API endpoints.

Handles:
- Bill creation (explicit charges or computed from occupancy)
- Updates, payment and deletion
- PDF download/regeneration and notification resend
- Manual monthly batch runs
"""
import asyncio
import logging
import os
import uuid
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import FileResponse

from rentbill.api.deps import DB, Dispatcher
from rentbill.jobs.monthly_billing import run_monthly_billing_job
from rentbill.schemas.bill import (
    BillCreate,
    BillGenerateRequest,
    BillListResponse,
    BillPayRequest,
    BillResponse,
    BillUpdate,
    MonthlyBillingRequest,
    MonthlyBillingResponse,
)
from rentbill.services.bill_lifecycle_service import BillLifecycleService
from rentbill.services.bill_repository import BillRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=BillListResponse)
async def list_bills(
    db: DB,
    tenant_id: Optional[uuid.UUID] = None,
    room_id: Optional[uuid.UUID] = None,
    building_id: Optional[uuid.UUID] = None,
    month: Optional[str] = Query(None, description="YYYY-MM"),
    payment_status: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List bills with filters, newest month first."""
    service = BillLifecycleService(db)
    items, total = await service.list_bills(
        tenant_id=tenant_id,
        room_id=room_id,
        building_id=building_id,
        billing_month=month,
        payment_status=payment_status,
        skip=skip,
        limit=limit,
    )
    return BillListResponse(items=[BillResponse.model_validate(bill) for bill in items], total=total)


@router.get("/public", response_model=List[BillResponse])
async def list_public_bills(
    db: DB,
    tenant_code: Optional[str] = None,
    room_number: Optional[str] = None,
    month: Optional[str] = Query(None, description="YYYY-MM"),
):
    """Tenant-facing lookup by tenant code or room number."""
    service = BillLifecycleService(db)
    return await service.list_public_bills(tenant_code, room_number, month)


@router.post("/generate-monthly", response_model=MonthlyBillingResponse)
async def generate_monthly_bills(data: MonthlyBillingRequest, db: DB, dispatcher: Dispatcher):
    """Run the monthly batch for a given month. Safe to repeat."""
    result = await run_monthly_billing_job(db, data.year, data.month, dispatcher=dispatcher)
    return MonthlyBillingResponse(
        year=result["year"],
        month=result["month"],
        created=result["created"],
        skipped=result["skipped"],
        failed=result["failed"],
        outcomes=result["outcomes"],
    )


@router.post("/generate", response_model=BillResponse, status_code=status.HTTP_201_CREATED)
async def generate_bill(data: BillGenerateRequest, db: DB, dispatcher: Dispatcher):
    """Compute a prorated bill from the tenant's occupancy and create it."""
    service = BillLifecycleService(db, dispatcher=dispatcher)
    return await service.generate_bill(data)


@router.post("", response_model=BillResponse, status_code=status.HTTP_201_CREATED)
async def create_bill(data: BillCreate, db: DB, dispatcher: Dispatcher):
    """Create a bill from explicit line items."""
    service = BillLifecycleService(db, dispatcher=dispatcher)
    return await service.create_bill_from_charges(data)


@router.get("/{bill_id}", response_model=BillResponse)
async def get_bill(bill_id: uuid.UUID, db: DB):
    service = BillLifecycleService(db)
    return await service.get_bill(bill_id)


@router.put("/{bill_id}", response_model=BillResponse)
async def update_bill(bill_id: uuid.UUID, data: BillUpdate, db: DB, dispatcher: Dispatcher):
    service = BillLifecycleService(db, dispatcher=dispatcher)
    return await service.update_bill(bill_id, data)


@router.put("/{bill_id}/pay", response_model=BillResponse)
async def pay_bill(bill_id: uuid.UUID, data: BillPayRequest, db: DB, dispatcher: Dispatcher):
    """Record a verified payment. Paying twice returns 409."""
    service = BillLifecycleService(db, dispatcher=dispatcher)
    return await service.pay(bill_id, data)


@router.delete("/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bill(bill_id: uuid.UUID, db: DB, dispatcher: Dispatcher):
    service = BillLifecycleService(db, dispatcher=dispatcher)
    await service.delete_bill(bill_id)


@router.post("/{bill_id}/send", status_code=status.HTTP_202_ACCEPTED)
async def resend_bill_notifications(bill_id: uuid.UUID, db: DB, dispatcher: Dispatcher):
    """Queue the bill's email and WhatsApp notifications again."""
    service = BillLifecycleService(db, dispatcher=dispatcher)
    await service.resend_notifications(bill_id)
    return {"status": "queued", "bill_id": str(bill_id)}


@router.post("/{bill_id}/pdf", response_model=BillResponse)
async def regenerate_bill_pdf(bill_id: uuid.UUID, db: DB, dispatcher: Dispatcher):
    """Render the invoice now and store its path on the bill."""
    repository = BillRepository(db)
    document = await repository.load_document(bill_id)
    try:
        path = await asyncio.to_thread(dispatcher.renderer.write, document)
    except OSError as e:
        logger.error(f"PDF generation failed for bill {bill_id}: {e}")
        raise HTTPException(status_code=500, detail="PDF generation failed")

    bill = await repository.get_bill_or_404(bill_id)
    await repository.update_bill(bill, {"pdf_url": path})
    await db.commit()
    await db.refresh(bill)
    return bill


@router.get("/{bill_id}/pdf")
async def download_bill_pdf(bill_id: uuid.UUID, db: DB, dispatcher: Dispatcher):
    """Serve the invoice PDF, rendering it first if it does not exist yet."""
    repository = BillRepository(db)
    document = await repository.load_document(bill_id)
    path = dispatcher.renderer.file_path(bill_id)
    if not os.path.exists(path):
        path = await asyncio.to_thread(dispatcher.renderer.write, document)
    filename = f"Bill_{document.tenant_code}_{document.billing_month.strftime('%Y-%m')}.pdf"
    return FileResponse(path, media_type="application/pdf", filename=filename)
