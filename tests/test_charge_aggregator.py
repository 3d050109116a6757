from decimal import Decimal
from types import SimpleNamespace

import pytest

from rentbill.core.errors import BillingValidationError
from rentbill.services.charge_aggregator import (
    aggregate_charges,
    compute_processing_fee,
    derive_totals_from_charges,
    normalize_charges,
    prorate_rent,
    resolve_rent_amount,
    round_amount,
    sum_charges,
)
from rentbill.services.occupancy_resolver import resolve_tenant_occupancy

from tests.helpers import utc


def occupancy_for(move_in, move_out=None, year=2026, month=6):
    tenant = SimpleNamespace(move_in_date=move_in, move_out_date=move_out)
    return resolve_tenant_occupancy(tenant, year, month)


def titles(breakdown):
    return [charge["title"] for charge in breakdown.charges]


def test_full_month_rent_is_unchanged():
    occupancy = occupancy_for(utc(2026, 1, 1))

    assert prorate_rent(Decimal("3333.33"), occupancy) == Decimal("3333.33")


def test_half_month_of_thirty_days():
    occupancy = occupancy_for(utc(2026, 6, 16))

    assert occupancy.elapsed_days == 15
    assert prorate_rent(3000, occupancy) == Decimal("1500")


def test_move_in_on_the_tenth_with_electricity_and_fee():
    occupancy = occupancy_for(utc(2026, 6, 10))

    breakdown = aggregate_charges(
        occupancy,
        rent_amount=3000,
        electricity=200,
        include_processing_fee=True,
    )

    assert breakdown.elapsed_days == 21
    assert breakdown.totals["rent"] == Decimal("2100")
    assert breakdown.totals["processing_fee"] == Decimal("42")
    assert breakdown.total_amount == 2342
    assert breakdown.charges == [
        {"title": "Rent", "amount": Decimal("2100")},
        {"title": "Electricity", "amount": Decimal("200")},
        {"title": "Processing Fee", "amount": Decimal("42")},
    ]


def test_zero_lines_are_omitted():
    breakdown = aggregate_charges(occupancy_for(utc(2026, 1, 1)), rent_amount=3000)

    assert titles(breakdown) == ["Rent"]
    assert breakdown.total_amount == 3000


def test_discount_line_is_negative_and_totals_keep_magnitude():
    breakdown = aggregate_charges(
        occupancy_for(utc(2026, 1, 1)),
        rent_amount=3000,
        additional_amount=250,
        discount=100,
    )

    assert titles(breakdown) == ["Rent", "Additional Amount", "Discount"]
    assert breakdown.charges[2]["amount"] == Decimal("-100")
    assert breakdown.totals["discount"] == Decimal("100")
    assert breakdown.total_amount == 3150


def test_processing_fee_is_on_prorated_rent_only():
    breakdown = aggregate_charges(
        occupancy_for(utc(2026, 1, 1)),
        rent_amount=1000,
        electricity=5000,
        include_processing_fee=True,
    )

    assert breakdown.totals["processing_fee"] == Decimal("20")


def test_rounding_is_half_up():
    assert round_amount(Decimal("2.5")) == Decimal("3")
    assert round_amount(Decimal("3.5")) == Decimal("4")
    assert compute_processing_fee(Decimal("25")) == Decimal("1")


def test_batch_mode_skips_proration():
    breakdown = aggregate_charges(occupancy_for(utc(2026, 6, 20)), rent_amount=3000, prorate=False)

    assert breakdown.totals["rent"] == Decimal("3000")


def test_charges_sum_matches_total():
    breakdown = aggregate_charges(
        occupancy_for(utc(2026, 6, 7)),
        rent_amount=4999,
        electricity=Decimal("123.40"),
        additional_amount=Decimal("77.70"),
        discount=50,
        include_processing_fee=True,
    )

    assert abs(sum_charges(breakdown.charges) - breakdown.total_amount) <= 1


def test_inactive_occupancy_rejected():
    with pytest.raises(BillingValidationError):
        aggregate_charges(occupancy_for(utc(2026, 7, 1)), rent_amount=3000)


def test_negative_inputs_rejected():
    with pytest.raises(BillingValidationError):
        aggregate_charges(occupancy_for(utc(2026, 1, 1)), rent_amount=3000, electricity=-1)


def test_total_must_be_positive():
    with pytest.raises(BillingValidationError):
        aggregate_charges(occupancy_for(utc(2026, 1, 1)), rent_amount=100, discount=100)


def test_rent_falls_back_to_room_rent():
    room = SimpleNamespace(monthly_rent=Decimal("4500"))

    assert resolve_rent_amount(SimpleNamespace(rent_amount=None), room) == Decimal("4500")
    assert resolve_rent_amount(SimpleNamespace(rent_amount=Decimal("4000")), room) == Decimal("4000")


def test_derive_totals_from_titles():
    charges = normalize_charges([
        {"title": "Monthly Rent", "amount": 3000},
        {"title": "Electricity Bill", "amount": 180},
        {"title": "Maintenance", "amount": 150},
        {"title": "Water", "amount": 50},
        {"title": "Discount", "amount": -100},
        {"title": "Processing Fee", "amount": 60},
    ])

    totals = derive_totals_from_charges(charges)

    assert totals == {
        "rent": Decimal("3000"),
        "electricity": Decimal("180"),
        "processing_fee": Decimal("60"),
        "additional_amount": Decimal("200"),
        "discount": Decimal("100"),
    }
    assert sum_charges(charges) == 3340


def test_normalize_charges_requires_titles():
    with pytest.raises(BillingValidationError):
        normalize_charges([{"title": " ", "amount": 10}])
