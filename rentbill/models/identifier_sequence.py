"""
Identifier sequence model for human readable codes.

One row per prefix holds the last number handed out:

    prefix = "T", current_number = 41, padding_length = 3
    -> next tenant code: T042
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from rentbill.database import Base
from rentbill.db_types import UUIDType


class IdentifierSequence(Base):
    """Monotonic counter per identifier prefix."""
    __tablename__ = "identifier_sequences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    prefix: Mapped[str] = mapped_column(
        String(10),
        unique=True,
        nullable=False,
        comment="T for tenants, R for rooms"
    )
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=3,
        nullable=False,
        comment="Zero padding (3 = 001)"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def get_next_code(self) -> str:
        """Increment the counter and return the formatted code."""
        self.current_number += 1
        return f"{self.prefix}{str(self.current_number).zfill(self.padding_length)}"
