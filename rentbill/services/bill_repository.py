"""
Persistence operations used by the bill lifecycle.

Every write flushes but never commits; the calling service owns the
transaction boundary.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentbill.core.errors import DuplicateBillError, NotFoundError
from rentbill.models.bill import Bill, BillPaymentStatus, BILL_UNIQUE_CONSTRAINT
from rentbill.models.room import Room, RoomTenancy
from rentbill.models.tenant import Tenant, TenantPayment
from rentbill.schemas.bill import BillDocument
from rentbill.services.charge_aggregator import ZERO, to_decimal
from rentbill.services.document_service import build_bill_document

logger = logging.getLogger(__name__)


def _is_bill_uniqueness_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return BILL_UNIQUE_CONSTRAINT in message or (
        "unique" in message and "billing_month" in message
    )


class BillRepository:
    """Bill, tenant and room reads/writes for billing."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    async def find_bill_by_room_tenant_month(
        self,
        room_id: uuid.UUID,
        tenant_id: uuid.UUID,
        billing_month: date,
    ) -> Optional[Bill]:
        result = await self.db.execute(
            select(Bill).where(
                and_(
                    Bill.room_id == room_id,
                    Bill.tenant_id == tenant_id,
                    Bill.billing_month == billing_month,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_bill(self, bill_id: uuid.UUID, with_relations: bool = False) -> Optional[Bill]:
        query = select(Bill).where(Bill.id == bill_id)
        if with_relations:
            query = query.options(
                selectinload(Bill.tenant),
                selectinload(Bill.room),
                selectinload(Bill.building),
            )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_bill_or_404(self, bill_id: uuid.UUID, with_relations: bool = False) -> Bill:
        bill = await self.get_bill(bill_id, with_relations=with_relations)
        if not bill:
            raise NotFoundError(f"Bill {bill_id} not found", details={"bill_id": str(bill_id)})
        return bill

    async def get_bill_by_order_id(self, razorpay_order_id: str) -> Optional[Bill]:
        result = await self.db.execute(
            select(Bill).where(Bill.razorpay_order_id == razorpay_order_id)
        )
        return result.scalars().first()

    async def get_bill_by_payment_link_id(self, payment_link_id: str) -> Optional[Bill]:
        result = await self.db.execute(
            select(Bill).where(Bill.razorpay_payment_link_id == payment_link_id)
        )
        return result.scalars().first()

    async def insert_bill(self, bill: Bill) -> Bill:
        """
        Insert a bill.

        The (room, tenant, billing_month) unique constraint decides races
        between concurrent creators; the loser gets DuplicateBillError.
        """
        details = {
            "room_id": str(bill.room_id),
            "tenant_id": str(bill.tenant_id),
            "billing_month": bill.billing_month.isoformat(),
        }
        self.db.add(bill)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_bill_uniqueness_violation(e):
                existing_id = await self._existing_bill_id(bill.room_id, bill.tenant_id, bill.billing_month)
                if existing_id:
                    details["bill_id"] = str(existing_id)
                raise DuplicateBillError(
                    "A bill already exists for this tenant, room and month",
                    details=details,
                )
            raise
        return bill

    async def _existing_bill_id(
        self,
        room_id: uuid.UUID,
        tenant_id: uuid.UUID,
        billing_month: date,
    ) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(Bill.id).where(
                Bill.room_id == room_id,
                Bill.tenant_id == tenant_id,
                Bill.billing_month == billing_month,
            )
        )
        return result.scalar_one_or_none()

    async def update_bill(self, bill: Bill, values: Dict[str, Any]) -> Bill:
        for key, value in values.items():
            setattr(bill, key, value)
        await self.db.flush()
        return bill

    async def update_unpaid_bill(self, bill: Bill, values: Dict[str, Any]) -> bool:
        """
        Write values with a conditional UPDATE that only matches a NOT_PAID bill.

        Returns False when the bill was paid after it was read.
        """
        result = await self.db.execute(
            update(Bill)
            .where(
                Bill.id == bill.id,
                Bill.payment_status == BillPaymentStatus.NOT_PAID.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self.db.refresh(bill)
        return True

    async def mark_bill_paid(
        self,
        bill: Bill,
        method: str,
        reference: Optional[str],
        paid_at: datetime,
        razorpay_payment_id: Optional[str] = None,
    ) -> bool:
        """
        Flip NOT_PAID to PAID with a conditional UPDATE.

        Returns False when another caller paid the bill first.
        """
        values = {
            "payment_status": BillPaymentStatus.PAID.value,
            "payment_method": method,
            "payment_reference": reference,
            "paid_at": paid_at,
        }
        if razorpay_payment_id:
            values["razorpay_payment_id"] = razorpay_payment_id

        result = await self.db.execute(
            update(Bill)
            .where(
                Bill.id == bill.id,
                Bill.payment_status == BillPaymentStatus.NOT_PAID.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self.db.refresh(bill)
        return True

    async def delete_bill(self, bill: Bill) -> None:
        await self.db.delete(bill)
        await self.db.flush()

    async def list_bills(
        self,
        tenant_id: Optional[uuid.UUID] = None,
        room_id: Optional[uuid.UUID] = None,
        building_id: Optional[uuid.UUID] = None,
        billing_month: Optional[date] = None,
        payment_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Bill], int]:
        filters = []
        if tenant_id:
            filters.append(Bill.tenant_id == tenant_id)
        if room_id:
            filters.append(Bill.room_id == room_id)
        if building_id:
            filters.append(Bill.building_id == building_id)
        if billing_month:
            filters.append(Bill.billing_month == billing_month)
        if payment_status:
            filters.append(Bill.payment_status == payment_status)

        count_result = await self.db.execute(select(func.count(Bill.id)).where(*filters))
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Bill)
            .where(*filters)
            .order_by(Bill.billing_month.desc(), Bill.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_public_bills(
        self,
        tenant_code: Optional[str] = None,
        room_number: Optional[str] = None,
        billing_month: Optional[date] = None,
    ) -> List[Bill]:
        """Bills looked up by tenant code or room number, newest month first."""
        query = (
            select(Bill)
            .join(Tenant, Tenant.id == Bill.tenant_id)
            .join(Room, Room.id == Bill.room_id)
        )
        lookups = []
        if tenant_code:
            lookups.append(Tenant.tenant_code == tenant_code.strip().upper())
        if room_number:
            lookups.append(Room.number == room_number.strip())
        if not lookups:
            return []
        query = query.where(or_(*lookups))
        if billing_month:
            query = query.where(Bill.billing_month == billing_month)

        result = await self.db.execute(query.order_by(Bill.billing_month.desc()))
        return list(result.scalars().all())

    async def load_document(self, bill_id: uuid.UUID) -> BillDocument:
        """Denormalized snapshot of a bill for rendering and notifications."""
        bill = await self.get_bill_or_404(bill_id, with_relations=True)
        return build_bill_document(bill)

    # ------------------------------------------------------------------
    # Tenants and rooms
    # ------------------------------------------------------------------

    async def get_tenant(self, tenant_id: uuid.UUID, for_update: bool = False) -> Optional[Tenant]:
        query = select(Tenant).where(Tenant.id == tenant_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_room(self, room_id: uuid.UUID) -> Optional[Room]:
        result = await self.db.execute(select(Room).where(Room.id == room_id))
        return result.scalar_one_or_none()

    async def tenant_has_tenancy(self, room_id: uuid.UUID, tenant_id: uuid.UUID) -> bool:
        """True if the tenant is assigned to the room now or was in its history."""
        result = await self.db.execute(
            select(func.count(RoomTenancy.id)).where(
                RoomTenancy.room_id == room_id,
                RoomTenancy.tenant_id == tenant_id,
            )
        )
        return (result.scalar() or 0) > 0

    async def list_rooms_for_billing(self) -> List[Room]:
        """All rooms with their building and assigned tenants loaded."""
        result = await self.db.execute(
            select(Room)
            .options(selectinload(Room.tenants), selectinload(Room.building))
            .order_by(Room.room_code)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def append_tenant_payment(
        self,
        tenant: Tenant,
        amount: Decimal,
        paid_on: datetime,
        method: str,
        receipt_number: Optional[str] = None,
        note: Optional[str] = None,
        bill_id: Optional[uuid.UUID] = None,
    ) -> TenantPayment:
        """Append a ledger entry and refresh the tenant's last-payment cache."""
        payment = TenantPayment(
            tenant_id=tenant.id,
            bill_id=bill_id,
            amount=to_decimal(amount),
            paid_on=paid_on,
            method=method,
            receipt_number=receipt_number,
            note=note,
        )
        self.db.add(payment)

        tenant.last_payment_amount = payment.amount
        tenant.last_payment_date = paid_on
        tenant.last_payment_method = method
        tenant.last_payment_receipt = receipt_number
        await self.db.flush()
        return payment

    async def update_tenant_due(self, tenant: Tenant, paid_amount: Any) -> Decimal:
        """
        Reduce the tenant's pending amount, clamped at zero.

        The due date is cleared once nothing is pending.
        """
        if tenant.pending_amount is None:
            return ZERO
        remaining = max(ZERO, to_decimal(tenant.pending_amount) - to_decimal(paid_amount))
        tenant.pending_amount = remaining
        if remaining == ZERO:
            tenant.due_date = None
        await self.db.flush()
        return remaining
