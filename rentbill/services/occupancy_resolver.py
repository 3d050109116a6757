"""
Occupancy resolution for a billing month.

Pure functions, no I/O. Works on anything exposing ``move_in_date`` and
``move_out_date`` (ORM tenants, schemas, simple namespaces).

All comparisons happen on UTC calendar dates: both residency bounds are
converted to UTC and truncated to the date before counting days, so the time
of day a tenant moved in never shifts the count.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple, Union

from rentbill.core.errors import BillingValidationError


@dataclass(frozen=True)
class Occupancy:
    """Residency of one tenant within one month."""
    tenant: Any
    year: int
    month: int
    is_active: bool
    occupied_start: Optional[date] = None
    occupied_end: Optional[date] = None
    elapsed_days: int = 0
    total_days: int = 0

    @property
    def is_full_month(self) -> bool:
        return self.is_active and self.elapsed_days == self.total_days


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last calendar day of the month."""
    if not 1 <= month <= 12:
        raise BillingValidationError(f"Invalid month: {month}", details={"month": month})
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def to_utc_date(value: Union[datetime, date]) -> date:
    """Date-only value of an instant in UTC. Naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def parse_billing_month(value: Union[str, date, datetime]) -> date:
    """
    Normalize a billing month to the first day of that month.

    Accepts a date/datetime or a "YYYY-MM" / "YYYY-MM-DD" string.
    """
    if isinstance(value, (date, datetime)):
        day = to_utc_date(value)
        return day.replace(day=1)

    text = (value or "").strip()
    try:
        parts = [int(part) for part in text[:10].split("-")]
        if len(parts) < 2:
            raise ValueError(text)
        return date(parts[0], parts[1], 1)
    except ValueError:
        raise BillingValidationError(
            f"Invalid billing month '{value}', expected YYYY-MM",
            details={"billing_month": value},
        )


def previous_month(today: date) -> Tuple[int, int]:
    """(year, month) of the calendar month before ``today``."""
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def is_active_in_month(tenant: Any, year: int, month: int) -> bool:
    """Active iff moved in on or before the month end and not moved out before its start."""
    month_start, month_end = month_bounds(year, month)
    move_in = to_utc_date(tenant.move_in_date)
    if move_in > month_end:
        return False
    move_out = tenant.move_out_date
    if move_out is not None and to_utc_date(move_out) < month_start:
        return False
    return True


def resolve_tenant_occupancy(tenant: Any, year: int, month: int) -> Occupancy:
    """Resolve one tenant's residency window clipped to the month."""
    month_start, month_end = month_bounds(year, month)
    total_days = days_in_month(year, month)

    if not is_active_in_month(tenant, year, month):
        return Occupancy(tenant=tenant, year=year, month=month, is_active=False, total_days=total_days)

    occupied_start = max(to_utc_date(tenant.move_in_date), month_start)
    move_out = tenant.move_out_date
    occupied_end = min(to_utc_date(move_out), month_end) if move_out is not None else month_end
    elapsed_days = (occupied_end - occupied_start).days + 1
    if elapsed_days < 1:
        # Move-out recorded before move-in
        return Occupancy(tenant=tenant, year=year, month=month, is_active=False, total_days=total_days)

    return Occupancy(
        tenant=tenant,
        year=year,
        month=month,
        is_active=True,
        occupied_start=occupied_start,
        occupied_end=occupied_end,
        elapsed_days=elapsed_days,
        total_days=total_days,
    )


def resolve_room_occupancy(tenants: Iterable[Any], year: int, month: int) -> List[Occupancy]:
    """Occupancy of every active tenant of a room. Inactive tenants are left out entirely."""
    resolved = [resolve_tenant_occupancy(tenant, year, month) for tenant in tenants]
    return [occupancy for occupancy in resolved if occupancy.is_active]
