import uuid
from datetime import date, datetime, timezone

from rentbill.schemas.bill import BillDocument


class RecordingDispatcher:
    """Stands in for BillDispatcher; keeps what would have been queued."""

    def __init__(self):
        self.submitted = []
        self.cancelled = []

    def submit(self, kind, document):
        self.submitted.append((kind, document))

    def cancel_pending(self, bill_id):
        self.cancelled.append(bill_id)
        return 0

    @property
    def kinds(self):
        return [kind for kind, _ in self.submitted]


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_document(bill_id=None, **overrides):
    """BillDocument for a one-line rent bill; fields can be overridden."""
    values = dict(
        bill_id=bill_id or uuid.uuid4(),
        billing_month=date(2026, 6, 1),
        tenant_code="T001",
        tenant_name="Asha Verma",
        tenant_phone="9876543210",
        tenant_email="asha@example.com",
        room_number="101",
        building_name="Sunrise Residency",
        charges=[{"title": "Rent", "amount": 3000}],
        totals={"rent": 3000},
        total_amount=3000,
        due_date=date(2026, 6, 7),
        payment_status="NOT_PAID",
        payment_link="http://localhost:5173/payment/public/x",
        download_link="http://localhost:8000/api/v1/bills/x/pdf",
    )
    values.update(overrides)
    return BillDocument(**values)
