"""Tenant and tenant payment ledger models."""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Date
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentbill.database import Base
from rentbill.db_types import UUIDType

if TYPE_CHECKING:
    from rentbill.models.room import Room


class Tenant(Base):
    """
    A person renting a room.

    ``move_out_date`` is NULL while the tenant is resident. The last payment
    and due columns are a denormalized cache of the payment ledger, written
    by the bill pay transition.
    """
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Sequential code e.g. T001"
    )

    # Identity and contact
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    id_proof_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    id_proof_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    number_of_persons: Mapped[int] = mapped_column(Integer, default=1)

    # Occupancy
    room_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("rooms.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    move_in_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    move_out_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Financial
    rent_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Monthly rent; falls back to the room rent when NULL"
    )
    advanced_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False
    )
    last_payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    last_payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_payment_receipt: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pending_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

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

    room: Mapped[Optional["Room"]] = relationship("Room", back_populates="tenants")
    payments: Mapped[List["TenantPayment"]] = relationship(
        "TenantPayment",
        back_populates="tenant",
        order_by="TenantPayment.paid_on",
        cascade="all, delete-orphan"
    )

    @property
    def is_resident(self) -> bool:
        return self.move_out_date is None

    def __repr__(self) -> str:
        return f"<Tenant(code='{self.tenant_code}', name='{self.full_name}')>"


class TenantPayment(Base):
    """Append-only ledger entry for money received from a tenant."""
    __tablename__ = "tenant_payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    bill_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("bills.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    receipt_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="payments")
