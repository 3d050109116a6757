"""
Bill lifecycle: create, update and pay.

Each operation validates, writes and commits its financial state, and only
then hands the bill to the dispatcher for document rendering and tenant
notifications. Dispatch problems are logged and never change the outcome
reported to the caller.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from rentbill.config import settings
from rentbill.core.errors import BillingValidationError, DuplicateBillError, NotFoundError, AlreadyPaidError
from rentbill.models.bill import Bill, BillPaymentStatus, PaymentMethod
from rentbill.schemas.bill import BillCreate, BillGenerateRequest, BillPayRequest, BillUpdate
from rentbill.services.bill_dispatcher import DispatchKind
from rentbill.services.bill_repository import BillRepository
from rentbill.services.bill_state_machine import FINANCIAL_FIELDS, can_delete, validate_edit, validate_payment
from rentbill.services.charge_aggregator import (
    ChargeBreakdown,
    aggregate_charges,
    derive_totals_from_charges,
    normalize_charges,
    resolve_rent_amount,
    sum_charges,
    to_decimal,
)
from rentbill.services.occupancy_resolver import days_in_month, parse_billing_month, resolve_tenant_occupancy

logger = logging.getLogger(__name__)


def default_due_date(billing_month: date) -> date:
    """Day BILL_DUE_DAY of the billing month, capped at the month's last day."""
    last_day = days_in_month(billing_month.year, billing_month.month)
    return billing_month.replace(day=min(settings.BILL_DUE_DAY, last_day))


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BillLifecycleService:
    """Owns Bill creation, updates and the NOT_PAID -> PAID transition."""

    def __init__(self, db: AsyncSession, dispatcher=None):
        """
        Args:
            db: Async database session; this service commits on it
            dispatcher: Receives ``submit(kind, document)`` after commits.
                None disables documents and notifications.
        """
        self.db = db
        self.repository = BillRepository(db)
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_bill(
        self,
        room_id: uuid.UUID,
        tenant_id: uuid.UUID,
        billing_month: Union[date, str],
        breakdown: ChargeBreakdown,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        payment_link: Optional[str] = None,
    ) -> Bill:
        """
        Persist a new NOT_PAID bill for (room, tenant, month).

        Tenant and room records are not modified.

        Raises:
            NotFoundError: Room or tenant missing
            BillingValidationError: Total not positive
            DuplicateBillError: A bill already exists for the tuple
        """
        month = parse_billing_month(billing_month)
        if breakdown.total_amount <= 0:
            raise BillingValidationError(
                "Total amount must be greater than zero",
                details={"total_amount": breakdown.total_amount},
            )

        room = await self.repository.get_room(room_id)
        if not room:
            raise NotFoundError(f"Room {room_id} not found", details={"room_id": str(room_id)})
        tenant = await self.repository.get_tenant(tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found", details={"tenant_id": str(tenant_id)})

        existing = await self.repository.find_bill_by_room_tenant_month(room_id, tenant_id, month)
        if existing:
            raise DuplicateBillError(
                f"Bill already exists for tenant {tenant.tenant_code} for {month.strftime('%B %Y')}",
                details={"bill_id": str(existing.id), "billing_month": month.isoformat()},
            )

        bill = Bill(
            tenant_id=tenant_id,
            room_id=room_id,
            building_id=room.building_id,
            billing_month=month,
            due_date=due_date or default_due_date(month),
            payment_status=BillPaymentStatus.NOT_PAID.value,
            notes=notes,
            payment_link=payment_link,
            **breakdown.column_values(),
        )
        await self.repository.insert_bill(bill)
        await self.db.commit()
        await self.db.refresh(bill)

        logger.info(
            f"Bill {bill.id} created for tenant {tenant.tenant_code} "
            f"({month.strftime('%Y-%m')}): total {bill.total_amount}"
        )
        await self._dispatch(DispatchKind.BILL_ISSUED, bill.id)
        return bill

    async def create_bill_from_charges(self, data: BillCreate) -> Bill:
        """Create a bill from explicit line items; totals and total are derived when omitted."""
        charges = normalize_charges(data.charges)
        if not charges:
            raise BillingValidationError("At least one charge is required")
        totals = (
            {key: to_decimal(value) for key, value in data.totals.model_dump().items()}
            if data.totals
            else derive_totals_from_charges(charges)
        )
        total_amount = data.total_amount if data.total_amount is not None else sum_charges(charges)

        breakdown = ChargeBreakdown(charges=charges, totals=totals, total_amount=total_amount)
        return await self.create_bill(
            room_id=data.room_id,
            tenant_id=data.tenant_id,
            billing_month=data.billing_month,
            breakdown=breakdown,
            due_date=data.due_date,
            notes=data.notes,
            payment_link=data.payment_link,
        )

    async def generate_bill(self, data: BillGenerateRequest) -> Bill:
        """
        Compute a prorated bill for one tenant-month and create it.

        The tenant must be (or have been) in the room and resident during
        the month.
        """
        month = parse_billing_month(data.billing_month)
        tenant = await self.repository.get_tenant(data.tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {data.tenant_id} not found", details={"tenant_id": str(data.tenant_id)})
        room = await self.repository.get_room(data.room_id)
        if not room:
            raise NotFoundError(f"Room {data.room_id} not found", details={"room_id": str(data.room_id)})

        if tenant.room_id != room.id and not await self.repository.tenant_has_tenancy(room.id, tenant.id):
            raise BillingValidationError(
                f"Tenant {tenant.tenant_code} has never been assigned to room {room.number}",
                details={"tenant_id": str(tenant.id), "room_id": str(room.id)},
            )

        occupancy = resolve_tenant_occupancy(tenant, month.year, month.month)
        breakdown = aggregate_charges(
            occupancy,
            rent_amount=resolve_rent_amount(tenant, room),
            electricity=data.electricity,
            additional_amount=data.additional_amount,
            discount=data.discount,
            include_processing_fee=data.include_processing_fee,
        )
        return await self.create_bill(
            room_id=room.id,
            tenant_id=tenant.id,
            billing_month=month,
            breakdown=breakdown,
            due_date=data.due_date,
            notes=data.notes,
            payment_link=data.payment_link,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_bill(self, bill_id: uuid.UUID, data: BillUpdate) -> Bill:
        """
        Apply a partial update.

        Changing ``charges`` re-derives ``total_amount`` from them, and the
        totals snapshot too unless one is supplied.

        Raises:
            NotFoundError: Bill missing
            AlreadyPaidError: Financial fields changed on a paid bill
            BillingValidationError: Resulting total not positive
        """
        bill = await self.repository.get_bill_or_404(bill_id)
        patch = data.model_dump(exclude_unset=True)
        validate_edit(bill, patch.keys())

        values: Dict[str, Any] = {
            key: value for key, value in patch.items() if key not in FINANCIAL_FIELDS
        }

        if FINANCIAL_FIELDS & patch.keys():
            charges = normalize_charges(data.charges) if data.charges is not None else bill.charges
            if data.totals is not None:
                totals = {key: to_decimal(value) for key, value in data.totals.model_dump().items()}
            elif data.charges is not None:
                totals = derive_totals_from_charges(charges)
            else:
                totals = None

            if data.charges is not None:
                total_amount = sum_charges(charges)
            elif data.total_amount is not None:
                total_amount = data.total_amount
            else:
                total_amount = bill.total_amount

            if total_amount <= 0:
                raise BillingValidationError(
                    "Total amount must be greater than zero",
                    details={"total_amount": total_amount},
                )

            values["charges"] = charges
            values["total_amount"] = total_amount
            if totals is not None:
                values.update({
                    "rent_amount": totals["rent"],
                    "electricity_amount": totals["electricity"],
                    "processing_fee": totals["processing_fee"],
                    "additional_amount": totals["additional_amount"],
                    "discount_amount": totals["discount"],
                })

        if FINANCIAL_FIELDS & patch.keys():
            # A payment may have committed since the bill was read
            if not await self.repository.update_unpaid_bill(bill, values):
                await self.db.rollback()
                raise AlreadyPaidError(
                    f"Bill {bill_id} was paid; its charges can no longer be changed",
                    error_code="BILL_FINANCIALS_FROZEN",
                    details={"bill_id": str(bill_id), "fields": sorted(FINANCIAL_FIELDS & patch.keys())},
                )
        else:
            await self.repository.update_bill(bill, values)
        await self.db.commit()
        await self.db.refresh(bill)
        logger.info(f"Bill {bill.id} updated: {sorted(patch.keys())}")

        await self._dispatch(DispatchKind.BILL_UPDATED, bill.id)
        return bill

    # ------------------------------------------------------------------
    # Pay
    # ------------------------------------------------------------------

    async def pay_bill(
        self,
        bill_id: uuid.UUID,
        payment_ref: Optional[str] = None,
        method: str = PaymentMethod.UPI.value,
        paid_at: Optional[datetime] = None,
        razorpay_payment_id: Optional[str] = None,
    ) -> Bill:
        """
        Mark a bill paid and post the payment to the tenant ledger.

        Order: paid flag and payment record, tenant payment entry and
        last-payment cache, pending amount reduction. All three commit
        together before documents and notifications are queued.

        Raises:
            NotFoundError: Bill missing
            AlreadyPaidError: Bill already paid, including by a concurrent caller
        """
        bill = await self.repository.get_bill_or_404(bill_id)
        validate_payment(bill)
        paid_at = _as_utc(paid_at)
        method = method or PaymentMethod.UPI.value

        # 1. Paid flag, guarded against a concurrent payment
        marked = await self.repository.mark_bill_paid(
            bill,
            method=method,
            reference=payment_ref,
            paid_at=paid_at,
            razorpay_payment_id=razorpay_payment_id,
        )
        if not marked:
            await self.db.rollback()
            raise AlreadyPaidError(
                f"Bill {bill_id} is already paid",
                details={"bill_id": str(bill_id)},
            )

        # 2-3. Tenant ledger and pending amount, tenant row locked
        tenant = await self.repository.get_tenant(bill.tenant_id, for_update=True)
        if tenant:
            await self.repository.append_tenant_payment(
                tenant,
                amount=bill.total_amount,
                paid_on=paid_at,
                method=method,
                receipt_number=payment_ref,
                note=f"Payment for bill {bill.id}",
                bill_id=bill.id,
            )
            await self.repository.update_tenant_due(tenant, bill.total_amount)
        else:
            logger.warning(f"Tenant {bill.tenant_id} for bill {bill.id} not found; ledger not updated")

        await self.db.commit()
        logger.info(f"Bill {bill.id} paid via {method} (ref: {payment_ref}): {bill.total_amount}")

        # 4. Best-effort side effects
        await self._dispatch(DispatchKind.PAYMENT_RECEIVED, bill.id)
        return bill

    async def pay(self, bill_id: uuid.UUID, data: BillPayRequest) -> Bill:
        return await self.pay_bill(bill_id, payment_ref=data.payment_ref, method=data.method, paid_at=data.paid_at)

    # ------------------------------------------------------------------
    # Other operations
    # ------------------------------------------------------------------

    async def get_bill(self, bill_id: uuid.UUID) -> Bill:
        return await self.repository.get_bill_or_404(bill_id)

    async def list_bills(
        self,
        tenant_id: Optional[uuid.UUID] = None,
        room_id: Optional[uuid.UUID] = None,
        building_id: Optional[uuid.UUID] = None,
        billing_month: Optional[Union[date, str]] = None,
        payment_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Bill], int]:
        month = parse_billing_month(billing_month) if billing_month else None
        return await self.repository.list_bills(
            tenant_id=tenant_id,
            room_id=room_id,
            building_id=building_id,
            billing_month=month,
            payment_status=payment_status,
            skip=skip,
            limit=limit,
        )

    async def list_public_bills(
        self,
        tenant_code: Optional[str] = None,
        room_number: Optional[str] = None,
        billing_month: Optional[Union[date, str]] = None,
    ) -> List[Bill]:
        if not tenant_code and not room_number:
            raise BillingValidationError("tenant_code or room_number is required")
        month = parse_billing_month(billing_month) if billing_month else None
        return await self.repository.list_public_bills(tenant_code, room_number, month)

    async def delete_bill(self, bill_id: uuid.UUID) -> None:
        """Delete an unpaid bill. Paid bills are part of the tenant ledger and stay."""
        bill = await self.repository.get_bill_or_404(bill_id)
        if not can_delete(bill.payment_status):
            raise AlreadyPaidError(
                f"Bill {bill_id} is paid and cannot be deleted",
                error_code="BILL_PAID_NOT_DELETABLE",
                details={"bill_id": str(bill_id)},
            )
        if self.dispatcher is not None:
            self.dispatcher.cancel_pending(bill_id)
        await self.repository.delete_bill(bill)
        await self.db.commit()
        logger.info(f"Bill {bill_id} deleted")

    async def resend_notifications(self, bill_id: uuid.UUID) -> None:
        """Queue the bill-issued (or payment) notifications again."""
        bill = await self.repository.get_bill_or_404(bill_id)
        kind = DispatchKind.PAYMENT_RECEIVED if bill.is_paid else DispatchKind.BILL_ISSUED
        await self._dispatch(kind, bill.id)

    async def _dispatch(self, kind: DispatchKind, bill_id: uuid.UUID) -> None:
        if self.dispatcher is None:
            return
        try:
            document = await self.repository.load_document(bill_id)
            self.dispatcher.submit(kind, document)
        except Exception as e:
            logger.error(f"Failed to queue {kind.value} side effects for bill {bill_id}: {e}")
