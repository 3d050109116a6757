"""Monthly rent bill model.

A bill is identified by (room, tenant, billing_month). The unique constraint
on that tuple is what stops two concurrent generators from billing the same
tenant twice for one month.
"""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Date
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentbill.database import Base
from rentbill.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from rentbill.models.building import Building
    from rentbill.models.room import Room
    from rentbill.models.tenant import Tenant


BILL_UNIQUE_CONSTRAINT = "uq_bill_room_tenant_month"


class BillPaymentStatus(str, Enum):
    """Bill payment status. NOT_PAID -> PAID is the only transition."""
    NOT_PAID = "NOT_PAID"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    """Common payment methods."""
    UPI = "UPI"
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    ONLINE = "ONLINE"


class Bill(Base):
    """Rent bill for one tenant of one room for one month."""
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint("room_id", "tenant_id", "billing_month", name=BILL_UNIQUE_CONSTRAINT),
        Index("ix_bills_building_month_status", "building_id", "billing_month", "payment_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    room_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    building_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("buildings.id", ondelete="RESTRICT"),
        nullable=False
    )
    billing_month: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the billed month"
    )

    # Line items: [{"title": "Rent", "amount": 2100}, ...]; discount is negative
    charges: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Totals snapshot, all non-negative
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    electricity_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    processing_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    additional_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Payment
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=BillPaymentStatus.NOT_PAID.value,
        nullable=False,
        index=True
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Gateway bookkeeping
    razorpay_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    razorpay_payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    razorpay_payment_link_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    # Documents and links
    pdf_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    payment_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    tenant: Mapped["Tenant"] = relationship("Tenant")
    room: Mapped["Room"] = relationship("Room")
    building: Mapped["Building"] = relationship("Building")

    @property
    def is_paid(self) -> bool:
        return self.payment_status == BillPaymentStatus.PAID.value

    @property
    def totals(self) -> dict:
        return {
            "rent": self.rent_amount,
            "electricity": self.electricity_amount,
            "processing_fee": self.processing_fee,
            "additional_amount": self.additional_amount,
            "discount": self.discount_amount,
        }

    def __repr__(self) -> str:
        return f"<Bill(tenant_id={self.tenant_id}, month={self.billing_month}, status={self.payment_status})>"
