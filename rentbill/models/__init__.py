"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""
from rentbill.models.building import Building
from rentbill.models.room import Room, RoomTenancy
from rentbill.models.tenant import Tenant, TenantPayment
from rentbill.models.bill import Bill, BillPaymentStatus, PaymentMethod, BILL_UNIQUE_CONSTRAINT
from rentbill.models.identifier_sequence import IdentifierSequence

__all__ = [
    "Building",
    "Room",
    "RoomTenancy",
    "Tenant",
    "TenantPayment",
    "Bill",
    "BillPaymentStatus",
    "PaymentMethod",
    "BILL_UNIQUE_CONSTRAINT",
    "IdentifierSequence",
]
