from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from rentbill.core.errors import BillingValidationError
from rentbill.services.occupancy_resolver import (
    days_in_month,
    is_active_in_month,
    parse_billing_month,
    previous_month,
    resolve_room_occupancy,
    resolve_tenant_occupancy,
)

from tests.helpers import utc


def tenant(move_in, move_out=None, code="T001"):
    return SimpleNamespace(move_in_date=move_in, move_out_date=move_out, tenant_code=code)


def test_full_month_resident():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 1, 15)), 2026, 6)

    assert occupancy.is_active
    assert occupancy.occupied_start == date(2026, 6, 1)
    assert occupancy.occupied_end == date(2026, 6, 30)
    assert occupancy.elapsed_days == occupancy.total_days == 30
    assert occupancy.is_full_month


def test_move_in_mid_month_counts_both_bounds():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 6, 10)), 2026, 6)

    assert occupancy.occupied_start == date(2026, 6, 10)
    assert occupancy.elapsed_days == 21
    assert not occupancy.is_full_month


def test_move_out_mid_month():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 1, 1), utc(2026, 6, 15)), 2026, 6)

    assert occupancy.occupied_end == date(2026, 6, 15)
    assert occupancy.elapsed_days == 15


def test_move_in_and_out_same_day_is_one_day():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 6, 5, 9), utc(2026, 6, 5, 18)), 2026, 6)

    assert occupancy.is_active
    assert occupancy.elapsed_days == 1


def test_move_out_on_first_day_of_month_is_active():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 5, 1), utc(2026, 6, 1)), 2026, 6)

    assert occupancy.is_active
    assert occupancy.elapsed_days == 1


def test_move_in_on_last_day_of_month_is_active():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 6, 30, 23, 30)), 2026, 6)

    assert occupancy.is_active
    assert occupancy.elapsed_days == 1


@pytest.mark.parametrize("move_in,move_out", [
    (utc(2026, 7, 1), None),
    (utc(2026, 1, 1), utc(2026, 5, 31)),
])
def test_inactive_tenants(move_in, move_out):
    subject = tenant(move_in, move_out)

    assert not is_active_in_month(subject, 2026, 6)
    assert not resolve_tenant_occupancy(subject, 2026, 6).is_active


def test_move_out_before_move_in_is_inactive():
    occupancy = resolve_tenant_occupancy(tenant(utc(2026, 6, 20), utc(2026, 6, 10)), 2026, 6)

    assert not occupancy.is_active
    assert occupancy.elapsed_days == 0


def test_dates_are_compared_in_utc():
    # 01:00 on 1 July in UTC+05:30 is still 30 June in UTC
    ist = timezone(timedelta(hours=5, minutes=30))
    subject = tenant(datetime(2026, 7, 1, 1, 0, tzinfo=ist))

    occupancy = resolve_tenant_occupancy(subject, 2026, 6)

    assert occupancy.is_active
    assert occupancy.occupied_start == date(2026, 6, 30)


def test_naive_datetimes_are_treated_as_utc():
    occupancy = resolve_tenant_occupancy(tenant(datetime(2026, 6, 10, 12, 0)), 2026, 6)

    assert occupancy.elapsed_days == 21


def test_leap_february():
    assert days_in_month(2028, 2) == 29
    occupancy = resolve_tenant_occupancy(tenant(utc(2028, 1, 1)), 2028, 2)
    assert occupancy.total_days == 29


def test_room_occupancy_leaves_out_inactive_tenants():
    tenants = [
        tenant(utc(2026, 1, 1), code="T001"),
        tenant(utc(2026, 1, 1), utc(2026, 3, 1), code="T002"),
        tenant(utc(2026, 6, 20), code="T003"),
    ]

    resolved = resolve_room_occupancy(tenants, 2026, 6)

    assert [o.tenant.tenant_code for o in resolved] == ["T001", "T003"]


def test_invalid_month_rejected():
    with pytest.raises(BillingValidationError):
        resolve_tenant_occupancy(tenant(utc(2026, 1, 1)), 2026, 13)


@pytest.mark.parametrize("value,expected", [
    ("2026-06", date(2026, 6, 1)),
    ("2026-06-17", date(2026, 6, 1)),
    (date(2026, 6, 17), date(2026, 6, 1)),
    (utc(2026, 6, 17, 10), date(2026, 6, 1)),
])
def test_parse_billing_month(value, expected):
    assert parse_billing_month(value) == expected


@pytest.mark.parametrize("value", ["", "June", "2026", "2026-13"])
def test_parse_billing_month_rejects_garbage(value):
    with pytest.raises(BillingValidationError):
        parse_billing_month(value)


def test_previous_month_wraps_year():
    assert previous_month(date(2026, 1, 1)) == (2025, 12)
    assert previous_month(date(2026, 7, 1)) == (2026, 6)
