from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rentbill.core.errors import (
    AlreadyPaidError,
    BillingValidationError,
    DuplicateBillError,
    NotFoundError,
)
from rentbill.models.bill import Bill, BillPaymentStatus
from rentbill.models.tenant import TenantPayment
from rentbill.schemas.bill import BillCreate, BillGenerateRequest, BillPayRequest, BillUpdate
from rentbill.schemas.tenancy import RoomCreate
from rentbill.services.bill_dispatcher import DispatchKind
from rentbill.services.bill_lifecycle_service import BillLifecycleService, default_due_date
from rentbill.services.bill_repository import BillRepository
from rentbill.services.tenancy_service import TenancyService

from tests.helpers import utc


async def count(db, model, *filters):
    result = await db.execute(select(func.count(model.id)).where(*filters))
    return result.scalar()


@pytest.fixture
async def tenant(make_tenant, room):
    return await make_tenant(
        room,
        utc(2026, 6, 10),
        rent_amount=Decimal("3000"),
        phone="9876543210",
        email="asha@example.com",
    )


@pytest.fixture
def service(db, dispatcher):
    return BillLifecycleService(db, dispatcher=dispatcher)


def rent_only(tenant, room, amount=3000, month="2026-06"):
    return BillCreate(
        tenant_id=tenant.id,
        room_id=room.id,
        billing_month=month,
        charges=[{"title": "Rent", "amount": amount}],
    )


async def test_generate_prorated_bill(service, dispatcher, tenant, room):
    bill = await service.generate_bill(BillGenerateRequest(
        tenant_id=tenant.id,
        room_id=room.id,
        billing_month="2026-06",
        electricity=Decimal("200"),
        include_processing_fee=True,
    ))

    assert bill.total_amount == 2342
    assert bill.billing_month == date(2026, 6, 1)
    assert [(c["title"], c["amount"]) for c in bill.charges] == [
        ("Rent", 2100),
        ("Electricity", 200),
        ("Processing Fee", 42),
    ]
    assert bill.rent_amount == Decimal("2100")
    assert bill.processing_fee == Decimal("42")
    assert bill.payment_status == BillPaymentStatus.NOT_PAID.value
    assert bill.building_id == room.building_id
    assert bill.due_date == date(2026, 6, 7)
    assert dispatcher.kinds == [DispatchKind.BILL_ISSUED]

    document = dispatcher.submitted[0][1]
    assert document.tenant_code == tenant.tenant_code
    assert document.room_number == "101"
    assert document.total_amount == 2342


async def test_create_does_not_touch_tenant_or_room(db, service, tenant, room):
    await service.create_bill_from_charges(rent_only(tenant, room))
    await db.refresh(tenant)
    await db.refresh(room)

    assert tenant.pending_amount == Decimal("0")
    assert tenant.last_payment_amount is None
    assert room.is_booked is True


async def test_duplicate_bill_rejected(db, service, tenant, room):
    await service.create_bill_from_charges(rent_only(tenant, room))

    with pytest.raises(DuplicateBillError):
        await service.create_bill_from_charges(rent_only(tenant, room, amount=2500, month="2026-06-15"))

    assert await count(db, Bill) == 1


async def test_unique_constraint_catches_a_race(db, service, tenant, room, monkeypatch):
    first = await service.create_bill_from_charges(rent_only(tenant, room))

    # Second creator read before the first committed
    async def nothing_found(self, room_id, tenant_id, billing_month):
        return None

    monkeypatch.setattr(BillRepository, "find_bill_by_room_tenant_month", nothing_found)

    with pytest.raises(DuplicateBillError) as exc_info:
        await service.create_bill_from_charges(rent_only(tenant, room))

    assert exc_info.value.details["bill_id"] == str(first.id)
    assert await count(db, Bill) == 1


async def test_same_tenant_other_month_is_allowed(db, service, tenant, room):
    await service.create_bill_from_charges(rent_only(tenant, room, month="2026-06"))
    await service.create_bill_from_charges(rent_only(tenant, room, month="2026-07"))

    assert await count(db, Bill) == 2


async def test_non_positive_total_rejected(db, service, tenant, room):
    data = BillCreate(
        tenant_id=tenant.id,
        room_id=room.id,
        billing_month="2026-06",
        charges=[{"title": "Rent", "amount": 100}, {"title": "Discount", "amount": -100}],
    )

    with pytest.raises(BillingValidationError):
        await service.create_bill_from_charges(data)

    assert await count(db, Bill) == 0


async def test_unknown_tenant(service, room):
    from uuid import uuid4

    data = BillCreate(
        tenant_id=uuid4(),
        room_id=room.id,
        billing_month="2026-06",
        charges=[{"title": "Rent", "amount": 100}],
    )

    with pytest.raises(NotFoundError):
        await service.create_bill_from_charges(data)


async def test_create_from_charges_derives_totals(service, tenant, room):
    bill = await service.create_bill_from_charges(BillCreate(
        tenant_id=tenant.id,
        room_id=room.id,
        billing_month="2026-06",
        charges=[
            {"title": "Rent", "amount": 3000},
            {"title": "Electricity", "amount": 150},
            {"title": "Discount", "amount": -50},
        ],
    ))

    assert bill.total_amount == 3100
    assert bill.electricity_amount == Decimal("150")
    assert bill.discount_amount == Decimal("50")


async def test_generate_for_tenant_never_in_room(db, service, tenant, building):
    other = await TenancyService(db).create_room(
        RoomCreate(building_id=building.id, number="102", monthly_rent=Decimal("2000"))
    )

    with pytest.raises(BillingValidationError):
        await service.generate_bill(BillGenerateRequest(
            tenant_id=tenant.id, room_id=other.id, billing_month="2026-06",
        ))


async def test_generate_for_month_before_move_in(service, tenant, room):
    with pytest.raises(BillingValidationError):
        await service.generate_bill(BillGenerateRequest(
            tenant_id=tenant.id, room_id=room.id, billing_month="2026-05",
        ))


async def test_pay_posts_to_tenant_ledger(db, service, dispatcher, make_tenant, room):
    tenant = await make_tenant(
        room,
        utc(2026, 1, 1),
        pending_amount=Decimal("500"),
        due_date=date(2026, 6, 7),
    )
    bill = await service.create_bill_from_charges(rent_only(tenant, room, amount=700))

    paid = await service.pay(bill.id, BillPayRequest(payment_ref="UTR123", method="UPI"))
    await db.refresh(tenant)

    assert paid.payment_status == BillPaymentStatus.PAID.value
    assert paid.payment_reference == "UTR123"
    assert paid.paid_at is not None
    assert tenant.pending_amount == Decimal("0")
    assert tenant.due_date is None
    assert tenant.last_payment_amount == Decimal("700")
    assert tenant.last_payment_method == "UPI"
    assert tenant.last_payment_receipt == "UTR123"

    payments = (await db.execute(select(TenantPayment))).scalars().all()
    assert len(payments) == 1
    assert payments[0].bill_id == bill.id
    assert payments[0].note == f"Payment for bill {bill.id}"
    assert dispatcher.kinds == [DispatchKind.BILL_ISSUED, DispatchKind.PAYMENT_RECEIVED]


async def test_partial_due_reduction(db, service, make_tenant, room):
    tenant = await make_tenant(room, utc(2026, 1, 1), pending_amount=Decimal("1000"), due_date=date(2026, 6, 7))
    bill = await service.create_bill_from_charges(rent_only(tenant, room, amount=700))

    await service.pay_bill(bill.id, payment_ref="cash-1", method="CASH")
    await db.refresh(tenant)

    assert tenant.pending_amount == Decimal("300")
    assert tenant.due_date == date(2026, 6, 7)


async def test_pay_twice_fails_without_second_ledger_entry(db, service, dispatcher, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room))
    await service.pay_bill(bill.id, payment_ref="UTR1")

    with pytest.raises(AlreadyPaidError):
        await service.pay_bill(bill.id, payment_ref="UTR2")

    assert await count(db, TenantPayment) == 1
    assert dispatcher.kinds.count(DispatchKind.PAYMENT_RECEIVED) == 1


async def test_conditional_update_refuses_a_paid_bill(db, service, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room))
    await service.pay_bill(bill.id, payment_ref="UTR1")

    repository = BillRepository(db)
    marked = await repository.mark_bill_paid(bill, method="UPI", reference="UTR2", paid_at=utc(2026, 6, 20))

    assert marked is False


async def test_update_recomputes_total_from_charges(service, dispatcher, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room))

    updated = await service.update_bill(bill.id, BillUpdate(charges=[
        {"title": "Rent", "amount": 3000},
        {"title": "Electricity", "amount": 240},
    ]))

    assert updated.total_amount == 3240
    assert updated.electricity_amount == Decimal("240")
    assert dispatcher.kinds[-1] == DispatchKind.BILL_UPDATED


async def test_update_never_changes_payment_status(service, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room))

    updated = await service.update_bill(bill.id, BillUpdate.model_validate({"notes": "late", "payment_status": "PAID"}))

    assert updated.notes == "late"
    assert updated.payment_status == BillPaymentStatus.NOT_PAID.value


async def test_paid_bill_financials_are_frozen(service, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room))
    await service.pay_bill(bill.id, payment_ref="UTR1")

    with pytest.raises(AlreadyPaidError) as exc_info:
        await service.update_bill(bill.id, BillUpdate(charges=[{"title": "Rent", "amount": 1}]))
    assert exc_info.value.error_code == "BILL_FINANCIALS_FROZEN"

    updated = await service.update_bill(bill.id, BillUpdate(notes="Paid at front desk"))
    assert updated.notes == "Paid at front desk"
    assert updated.total_amount == 3000


async def test_payment_after_read_blocks_charge_edit(session_factory, service, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room))

    async with session_factory() as editor_db:
        editor = BillLifecycleService(editor_db)
        # Editor holds the bill as NOT_PAID when the payment lands
        await editor.repository.get_bill(bill.id)
        await service.pay_bill(bill.id, payment_ref="UTR1")

        with pytest.raises(AlreadyPaidError) as exc_info:
            await editor.update_bill(bill.id, BillUpdate(charges=[{"title": "Rent", "amount": 1}]))
        assert exc_info.value.error_code == "BILL_FINANCIALS_FROZEN"

    async with session_factory() as fresh:
        stored = await fresh.get(Bill, bill.id)
        assert stored.payment_status == BillPaymentStatus.PAID.value
        assert stored.total_amount == 3000
        assert [(c["title"], c["amount"]) for c in stored.charges] == [("Rent", 3000)]


async def test_delete_unpaid_only(db, service, dispatcher, tenant, room):
    bill = await service.create_bill_from_charges(rent_only(tenant, room, month="2026-06"))
    await service.delete_bill(bill.id)

    assert dispatcher.cancelled == [bill.id]
    assert await count(db, Bill) == 0

    paid = await service.create_bill_from_charges(rent_only(tenant, room, month="2026-07"))
    await service.pay_bill(paid.id, payment_ref="UTR1")
    with pytest.raises(AlreadyPaidError):
        await service.delete_bill(paid.id)


async def test_dispatch_failure_does_not_fail_create(db, tenant, room):
    class BrokenDispatcher:
        def submit(self, kind, document):
            raise RuntimeError("queue down")

    service = BillLifecycleService(db, dispatcher=BrokenDispatcher())

    bill = await service.create_bill_from_charges(rent_only(tenant, room))

    assert bill.id is not None
    assert await count(db, Bill) == 1


async def test_public_lookup(service, tenant, room):
    await service.create_bill_from_charges(rent_only(tenant, room))

    by_code = await service.list_public_bills(tenant_code=tenant.tenant_code.lower())
    by_room = await service.list_public_bills(room_number="101", billing_month="2026-06")

    assert len(by_code) == len(by_room) == 1
    with pytest.raises(BillingValidationError):
        await service.list_public_bills()


def test_default_due_date_is_capped_at_month_end(monkeypatch):
    from rentbill.config import settings

    monkeypatch.setattr(settings, "BILL_DUE_DAY", 31)

    assert default_due_date(date(2026, 2, 1)) == date(2026, 2, 28)
