"""
Buildings, rooms and tenant assignments.

Keeps three things in step whenever a tenant moves:
- ``Tenant.room_id`` (the live assignment)
- the open ``RoomTenancy`` history snapshot
- ``Room.is_booked``
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentbill.core.errors import BillingValidationError, NotFoundError
from rentbill.models.building import Building
from rentbill.models.room import Room, RoomTenancy
from rentbill.models.tenant import Tenant
from rentbill.schemas.tenancy import (
    BuildingCreate,
    OccupancyEntry,
    RoomCreate,
    RoomOccupancyResponse,
    TenantCreate,
)
from rentbill.services.charge_aggregator import prorate_rent, resolve_rent_amount
from rentbill.services.identifier_sequence_service import (
    IdentifierSequenceService,
    ROOM_PREFIX,
    TENANT_PREFIX,
)
from rentbill.services.occupancy_resolver import parse_billing_month, resolve_room_occupancy

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TenancyService:
    """Room and tenant management."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.sequences = IdentifierSequenceService(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_building(self, building_id: uuid.UUID) -> Building:
        building = await self.db.get(Building, building_id)
        if not building:
            raise NotFoundError(f"Building {building_id} not found", details={"building_id": str(building_id)})
        return building

    async def get_room(self, room_id: uuid.UUID, with_details: bool = False) -> Room:
        query = select(Room).where(Room.id == room_id)
        if with_details:
            query = query.options(
                selectinload(Room.tenants),
                selectinload(Room.history),
            ).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        room = result.scalar_one_or_none()
        if not room:
            raise NotFoundError(f"Room {room_id} not found", details={"room_id": str(room_id)})
        return room

    async def get_tenant(self, tenant_id: uuid.UUID, with_payments: bool = False) -> Tenant:
        query = select(Tenant).where(Tenant.id == tenant_id)
        if with_payments:
            query = query.options(selectinload(Tenant.payments)).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        tenant = result.scalar_one_or_none()
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found", details={"tenant_id": str(tenant_id)})
        return tenant

    async def _open_tenancy(self, room_id: uuid.UUID, tenant_id: uuid.UUID) -> Optional[RoomTenancy]:
        result = await self.db.execute(
            select(RoomTenancy)
            .where(
                RoomTenancy.room_id == room_id,
                RoomTenancy.tenant_id == tenant_id,
                RoomTenancy.leaving_date.is_(None),
            )
            .order_by(RoomTenancy.booking_date.desc())
        )
        return result.scalars().first()

    async def list_buildings(self) -> List[Building]:
        result = await self.db.execute(select(Building).order_by(Building.name))
        return list(result.scalars().all())

    async def list_rooms(
        self,
        building_id: Optional[uuid.UUID] = None,
        is_booked: Optional[bool] = None,
    ) -> List[Room]:
        query = select(Room)
        if building_id:
            query = query.where(Room.building_id == building_id)
        if is_booked is not None:
            query = query.where(Room.is_booked == is_booked)
        result = await self.db.execute(query.order_by(Room.room_code))
        return list(result.scalars().all())

    async def list_tenants(
        self,
        room_id: Optional[uuid.UUID] = None,
        active_only: bool = False,
    ) -> List[Tenant]:
        query = select(Tenant)
        if room_id:
            query = query.where(Tenant.room_id == room_id)
        if active_only:
            query = query.where(Tenant.move_out_date.is_(None))
        result = await self.db.execute(query.order_by(Tenant.tenant_code))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_building(self, data: BuildingCreate) -> Building:
        building = Building(**data.model_dump())
        self.db.add(building)
        await self.db.commit()
        await self.db.refresh(building)
        logger.info(f"Building created: {building.name}")
        return building

    async def create_room(self, data: RoomCreate) -> Room:
        await self.get_building(data.building_id)
        values = data.model_dump()
        values["additional_charges"] = [
            {"title": charge.title, "amount": charge.amount} for charge in data.additional_charges
        ]
        room = Room(room_code=await self.sequences.get_next_code(ROOM_PREFIX), **values)
        self.db.add(room)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise BillingValidationError(
                f"Room {data.number} already exists in this building",
                error_code="DUPLICATE_ROOM",
                details={"number": data.number},
            )
        await self.db.commit()
        await self.db.refresh(room)
        logger.info(f"Room {room.room_code} ({room.number}) created")
        return room

    async def create_tenant(self, data: TenantCreate) -> Tenant:
        """Create a tenant with the next sequential code; assigns the room when given."""
        values = data.model_dump(exclude={"room_id", "move_in_date"})
        move_in_date = _as_utc(data.move_in_date)
        tenant = Tenant(
            tenant_code=await self.sequences.get_next_code(TENANT_PREFIX),
            move_in_date=move_in_date,
            **values,
        )
        self.db.add(tenant)
        await self.db.flush()

        if data.room_id:
            await self._assign(await self.get_room(data.room_id), tenant, move_in_date)

        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info(f"Tenant {tenant.tenant_code} created")
        return tenant

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def assign_tenant(
        self,
        room_id: uuid.UUID,
        tenant_id: uuid.UUID,
        booking_date: Optional[datetime] = None,
    ) -> Room:
        """
        Assign a tenant to a room.

        Raises:
            BillingValidationError: Tenant already in this room, or moved out
        """
        room = await self.get_room(room_id)
        tenant = await self.get_tenant(tenant_id)
        if not tenant.is_resident:
            raise BillingValidationError(
                f"Tenant {tenant.tenant_code} has moved out",
                details={"tenant_id": str(tenant_id)},
            )
        if tenant.room_id == room.id and await self._open_tenancy(room.id, tenant.id):
            raise BillingValidationError(
                f"Tenant {tenant.tenant_code} is already assigned to room {room.number}",
                error_code="TENANT_ALREADY_ASSIGNED",
                details={"tenant_id": str(tenant_id), "room_id": str(room_id)},
            )

        await self._assign(room, tenant, _as_utc(booking_date))
        await self.db.commit()
        logger.info(f"Tenant {tenant.tenant_code} assigned to room {room.room_code}")
        return await self.get_room(room.id, with_details=True)

    async def _assign(self, room: Room, tenant: Tenant, booking_date: datetime) -> None:
        previous_room_id = tenant.room_id
        if previous_room_id and previous_room_id != room.id:
            await self._close_tenancy(previous_room_id, tenant.id, booking_date)

        tenant.room_id = room.id
        self.db.add(RoomTenancy(
            room_id=room.id,
            tenant_id=tenant.id,
            tenant_code=tenant.tenant_code,
            full_name=tenant.full_name,
            booking_date=booking_date,
        ))
        await self.db.flush()

        await self.sync_room_booking(room.id)
        if previous_room_id and previous_room_id != room.id:
            await self.sync_room_booking(previous_room_id)

    async def _close_tenancy(self, room_id: uuid.UUID, tenant_id: uuid.UUID, leaving_date: datetime) -> None:
        tenancy = await self._open_tenancy(room_id, tenant_id)
        if tenancy:
            tenancy.leaving_date = leaving_date
            await self.db.flush()

    async def remove_tenant(
        self,
        room_id: uuid.UUID,
        tenant_id: uuid.UUID,
        leaving_date: Optional[datetime] = None,
    ) -> Room:
        """Detach a tenant from a room; the history entry is closed, not deleted."""
        room = await self.get_room(room_id)
        tenant = await self.get_tenant(tenant_id)
        if tenant.room_id != room.id:
            raise BillingValidationError(
                f"Tenant {tenant.tenant_code} is not assigned to room {room.number}",
                details={"tenant_id": str(tenant_id), "room_id": str(room_id)},
            )

        await self._close_tenancy(room.id, tenant.id, _as_utc(leaving_date))
        tenant.room_id = None
        await self.db.flush()
        await self.sync_room_booking(room.id)
        await self.db.commit()
        logger.info(f"Tenant {tenant.tenant_code} removed from room {room.room_code}")
        return await self.get_room(room.id, with_details=True)

    async def move_out(self, tenant_id: uuid.UUID, leaving_date: Optional[datetime] = None) -> Tenant:
        """
        Record a tenant's departure.

        Calling it again for a tenant who already moved out changes nothing.
        The tenant keeps its room reference so the departure month can still
        be billed.
        """
        tenant = await self.get_tenant(tenant_id)
        if tenant.move_out_date is not None:
            logger.info(f"Tenant {tenant.tenant_code} already moved out on {tenant.move_out_date}")
            return tenant

        leaving_date = _as_utc(leaving_date)
        tenant.move_out_date = leaving_date
        if tenant.room_id:
            await self._close_tenancy(tenant.room_id, tenant.id, leaving_date)
        await self.db.flush()
        if tenant.room_id:
            await self.sync_room_booking(tenant.room_id)

        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info(f"Tenant {tenant.tenant_code} moved out")
        return tenant

    async def sync_room_booking(self, room_id: uuid.UUID) -> bool:
        """Booked iff at least one assigned tenant has not moved out."""
        result = await self.db.execute(
            select(func.count(Tenant.id)).where(
                Tenant.room_id == room_id,
                Tenant.move_out_date.is_(None),
            )
        )
        is_booked = (result.scalar() or 0) > 0
        room = await self.db.get(Room, room_id)
        if room and room.is_booked != is_booked:
            room.is_booked = is_booked
            await self.db.flush()
        return is_booked

    # ------------------------------------------------------------------
    # Occupancy preview
    # ------------------------------------------------------------------

    async def room_occupancy(self, room_id: uuid.UUID, billing_month: Union[date, str]) -> RoomOccupancyResponse:
        """Active tenants of a room for a month with their prorated rent."""
        month = parse_billing_month(billing_month)
        room = await self.get_room(room_id, with_details=True)

        entries: List[OccupancyEntry] = []
        for occupancy in resolve_room_occupancy(room.tenants, month.year, month.month):
            tenant = occupancy.tenant
            rent = resolve_rent_amount(tenant, room)
            entries.append(OccupancyEntry(
                tenant_id=tenant.id,
                tenant_code=tenant.tenant_code,
                full_name=tenant.full_name,
                occupied_start=occupancy.occupied_start,
                occupied_end=occupancy.occupied_end,
                elapsed_days=occupancy.elapsed_days,
                total_days=occupancy.total_days,
                rent_amount=rent,
                prorated_rent=prorate_rent(rent, occupancy),
            ))
        return RoomOccupancyResponse(room_id=room.id, billing_month=month, tenants=entries)
