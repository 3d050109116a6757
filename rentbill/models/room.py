"""Room and tenancy history models.

Room.tenants is the live assignment (tenants whose ``room_id`` points here).
RoomTenancy rows are snapshots: tenant code and name are copied at booking
time and stay as written even if the tenant record later changes. A row is
only ever appended or closed by setting ``leaving_date``.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentbill.database import Base
from rentbill.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from rentbill.models.building import Building
    from rentbill.models.tenant import Tenant


class Room(Base):
    """A lettable room inside a building."""
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("building_id", "number", name="uq_room_building_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    room_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        comment="Sequential code e.g. R001"
    )
    building_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("buildings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    number: Mapped[str] = mapped_column(String(20), nullable=False)
    floor: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, default=1)

    monthly_rent: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False,
        comment="Base rent used when a tenant has no rent of their own"
    )
    additional_charges: Mapped[list] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
        comment="Recurring room charges: [{title, amount}]"
    )
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    building: Mapped["Building"] = relationship("Building", back_populates="rooms")
    tenants: Mapped[List["Tenant"]] = relationship(
        "Tenant",
        back_populates="room",
        order_by="Tenant.move_in_date"
    )
    history: Mapped[List["RoomTenancy"]] = relationship(
        "RoomTenancy",
        back_populates="room",
        order_by="RoomTenancy.booking_date",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Room(code='{self.room_code}', number='{self.number}')>"


class RoomTenancy(Base):
    """Snapshot of one tenancy period in a room."""
    __tablename__ = "room_tenancies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    room_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Snapshot fields
    tenant_code: Mapped[str] = mapped_column(String(20), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    booking_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    leaving_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL while the tenancy is open"
    )

    room: Mapped["Room"] = relationship("Room", back_populates="history")

    @property
    def is_open(self) -> bool:
        return self.leaving_date is None
