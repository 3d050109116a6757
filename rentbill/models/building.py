"""Building model."""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentbill.database import Base
from rentbill.db_types import UUIDType

if TYPE_CHECKING:
    from rentbill.models.room import Room


class Building(Base):
    """A rental property containing rooms."""
    __tablename__ = "buildings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    manager_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    rooms: Mapped[List["Room"]] = relationship("Room", back_populates="building")

    def __repr__(self) -> str:
        return f"<Building(name='{self.name}')>"
