"""
Monthly Bill Generation Job.

Bills every active tenant of every room for one month:
- Tenants active at any point in the month are billed their full monthly
  rent (tenant rent, else the room rent); no proration in the batch path
- Recurring room charges are split equally among the room's active tenants
- Tenants that already have a bill for the month are skipped, so re-running
  a month creates nothing new
- One tenant's failure is recorded and the run moves on

Triggers:
- Monthly scheduled job (via APScheduler), billing the completed prior month
- Manual run for a given year/month from the API
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from rentbill.config import settings
from rentbill.core.errors import BillingError, DuplicateBillError
from rentbill.services.bill_lifecycle_service import BillLifecycleService
from rentbill.services.bill_repository import BillRepository
from rentbill.services.charge_aggregator import ZERO, aggregate_charges, resolve_rent_amount, to_decimal
from rentbill.services.occupancy_resolver import Occupancy, previous_month, resolve_room_occupancy

logger = logging.getLogger(__name__)


@dataclass
class BillingTarget:
    """Everything needed to bill one tenant, copied out of the ORM objects."""
    room_id: uuid.UUID
    tenant_id: uuid.UUID
    tenant_code: str
    rent_amount: Decimal
    additional_amount: Decimal
    occupancy: Occupancy


def room_charge_share(room: Any, active_count: int) -> Decimal:
    """Equal share of a room's recurring charges, to the paisa."""
    if not active_count:
        return ZERO
    total = sum((to_decimal(charge.get("amount")) for charge in (room.additional_charges or [])), ZERO)
    return (total / active_count).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def collect_billing_targets(rooms: List[Any], year: int, month: int) -> List[BillingTarget]:
    """Resolve active tenants of every room; rooms with nobody active are left out."""
    targets = []
    for room in rooms:
        active = resolve_room_occupancy(room.tenants, year, month)
        if not active:
            continue
        share = room_charge_share(room, len(active))
        for occupancy in active:
            tenant = occupancy.tenant
            targets.append(BillingTarget(
                room_id=room.id,
                tenant_id=tenant.id,
                tenant_code=tenant.tenant_code,
                rent_amount=resolve_rent_amount(tenant, room),
                additional_amount=share,
                occupancy=occupancy,
            ))
    return targets


async def run_monthly_billing_job(
    db: AsyncSession,
    year: int,
    month: int,
    dispatcher=None,
) -> Dict[str, Any]:
    """
    Main billing job: create the month's bills for all active tenants.

    Returns:
        Summary with per-tenant outcomes (created / skipped / failed)
    """
    logger.info(f"Starting monthly billing job for {year}-{month:02d}...")
    billing_month = date(year, month, 1)

    results = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "year": year,
        "month": month,
        "created": 0,
        "skipped": 0,
        "failed": 0,
        "outcomes": [],
        "errors": [],
    }

    repository = BillRepository(db)
    lifecycle = BillLifecycleService(db, dispatcher=dispatcher)

    rooms = await repository.list_rooms_for_billing()
    targets = collect_billing_targets(rooms, year, month)
    logger.info(f"{len(targets)} active tenant(s) across {len(rooms)} room(s)")

    for target in targets:
        outcome: Dict[str, Any] = {
            "tenant_id": target.tenant_id,
            "tenant_code": target.tenant_code,
            "room_id": target.room_id,
            "status": "created",
            "bill_id": None,
            "total_amount": None,
            "error": None,
        }
        try:
            existing = await repository.find_bill_by_room_tenant_month(
                target.room_id, target.tenant_id, billing_month
            )
            if existing:
                outcome.update(status="skipped", bill_id=existing.id, total_amount=existing.total_amount)
            else:
                breakdown = aggregate_charges(
                    target.occupancy,
                    rent_amount=target.rent_amount,
                    additional_amount=target.additional_amount,
                    include_processing_fee=settings.BATCH_INCLUDE_PROCESSING_FEE,
                    prorate=False,
                )
                bill = await lifecycle.create_bill(
                    room_id=target.room_id,
                    tenant_id=target.tenant_id,
                    billing_month=billing_month,
                    breakdown=breakdown,
                )
                outcome.update(bill_id=bill.id, total_amount=bill.total_amount)

        except DuplicateBillError as e:
            # Created concurrently by someone else; same as already billed
            outcome.update(status="skipped", bill_id=(e.details or {}).get("bill_id"))

        except BillingError as e:
            await db.rollback()
            logger.error(f"Billing failed for tenant {target.tenant_code}: {e.message}")
            outcome.update(status="failed", error=e.message)
            results["errors"].append(f"{target.tenant_code}: {e.message}")

        except Exception as e:
            await db.rollback()
            logger.error(f"Billing failed for tenant {target.tenant_code}: {e}")
            outcome.update(status="failed", error=str(e))
            results["errors"].append(f"{target.tenant_code}: {e}")

        results[outcome["status"]] += 1
        results["outcomes"].append(outcome)

    results["completed_at"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        f"Monthly billing {year}-{month:02d} complete: created={results['created']}, "
        f"skipped={results['skipped']}, failed={results['failed']}"
    )
    return results


async def run_scheduled_monthly_billing(today: Optional[date] = None) -> Dict[str, Any]:
    """Scheduler entry point: bills the month before ``today`` in the billing timezone."""
    from rentbill.database import get_db_session
    from rentbill.services.bill_dispatcher import get_bill_dispatcher

    if today is None:
        today = datetime.now(ZoneInfo(settings.SCHEDULER_TIMEZONE)).date()
    year, month = previous_month(today)

    async with get_db_session() as db:
        return await run_monthly_billing_job(db, year, month, dispatcher=get_bill_dispatcher())


def register_monthly_billing_job(scheduler) -> None:
    """Register the monthly billing job with APScheduler."""
    scheduler.add_job(
        run_scheduled_monthly_billing,
        'cron',
        day=settings.MONTHLY_BILLING_DAY,
        hour=settings.MONTHLY_BILLING_HOUR,
        minute=settings.MONTHLY_BILLING_MINUTE,
        id='monthly_bill_generation',
        name='Monthly Bill Generation',
        replace_existing=True,
    )
    logger.info(
        f"Monthly billing job registered (day {settings.MONTHLY_BILLING_DAY} "
        f"{settings.MONTHLY_BILLING_HOUR:02d}:{settings.MONTHLY_BILLING_MINUTE:02d})"
    )
