"""
Identifier sequence service for sequential human readable codes.

USAGE:
    service = IdentifierSequenceService(db)
    code = await service.get_next_code("T")
    # Returns: T001, then T002, ...
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentbill.models.identifier_sequence import IdentifierSequence


TENANT_PREFIX = "T"
ROOM_PREFIX = "R"

DEFAULT_PADDING = 3


class IdentifierSequenceService:
    """
    Hands out monotonic codes per prefix.

    The sequence row is read with SELECT FOR UPDATE, so concurrent callers on
    PostgreSQL queue behind each other instead of reusing a number. Codes are
    also unique columns on their tables, which catches anything that slips by.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_or_create_sequence(self, prefix: str) -> IdentifierSequence:
        result = await self.db.execute(
            select(IdentifierSequence)
            .where(IdentifierSequence.prefix == prefix)
            .with_for_update()
        )
        sequence = result.scalar_one_or_none()
        if sequence is None:
            sequence = IdentifierSequence(
                prefix=prefix,
                current_number=0,
                padding_length=DEFAULT_PADDING,
            )
            self.db.add(sequence)
            await self.db.flush()
        return sequence

    async def get_next_code(self, prefix: str) -> str:
        """
        Get the next code for a prefix with an atomic increment.

        Args:
            prefix: Code prefix, e.g. "T" or "R"

        Returns:
            Formatted code, e.g. T001
        """
        sequence = await self._get_or_create_sequence(prefix.upper())
        code = sequence.get_next_code()
        await self.db.flush()
        return code

    async def preview_next_code(self, prefix: str) -> str:
        """What the next code would be, without incrementing."""
        result = await self.db.execute(
            select(IdentifierSequence).where(IdentifierSequence.prefix == prefix.upper())
        )
        sequence = result.scalar_one_or_none()
        current = sequence.current_number if sequence else 0
        padding = sequence.padding_length if sequence else DEFAULT_PADDING
        return f"{prefix.upper()}{str(current + 1).zfill(padding)}"
