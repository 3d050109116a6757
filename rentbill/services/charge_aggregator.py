"""
Charge aggregation for rent bills.

Turns a resolved occupancy plus manual adjustments into the canonical line
items, totals snapshot and integer total of a bill. Pure functions, no I/O.

Rules:
- Rent is prorated by occupied days; a full month passes the rent through
  unchanged.
- The 2% processing fee is taken on the prorated rent, before electricity,
  additional charges and discount are added.
- Zero-valued optional lines are left out of ``charges``; the discount line
  carries a negative amount while ``totals`` keeps its magnitude.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Optional

from rentbill.core.errors import BillingValidationError
from rentbill.services.occupancy_resolver import Occupancy


PROCESSING_FEE_RATE = Decimal("0.02")

RENT_TITLE = "Rent"
ELECTRICITY_TITLE = "Electricity"
ADDITIONAL_TITLE = "Additional Amount"
DISCOUNT_TITLE = "Discount"
PROCESSING_FEE_TITLE = "Processing Fee"

ZERO = Decimal("0")


@dataclass
class ChargeBreakdown:
    """Line items, totals snapshot and total of one bill."""
    charges: List[Dict[str, Any]]
    totals: Dict[str, Decimal]
    total_amount: int
    elapsed_days: Optional[int] = None
    total_days: Optional[int] = None
    notes: List[str] = field(default_factory=list)

    def column_values(self) -> Dict[str, Any]:
        """Bill column values for this breakdown."""
        return {
            "charges": self.charges,
            "rent_amount": self.totals["rent"],
            "electricity_amount": self.totals["electricity"],
            "processing_fee": self.totals["processing_fee"],
            "additional_amount": self.totals["additional_amount"],
            "discount_amount": self.totals["discount"],
            "total_amount": self.total_amount,
        }


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BillingValidationError(
            f"Invalid {field_name}: {value!r}",
            details={"field": field_name, "value": str(value)},
        )


def round_amount(value: Any) -> Decimal:
    """Round half up to a whole currency unit."""
    return to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def resolve_rent_amount(tenant: Any, room: Any = None) -> Decimal:
    """Tenant rent, falling back to the room's base rent when unset."""
    rent = getattr(tenant, "rent_amount", None)
    if rent is None and room is not None:
        rent = getattr(room, "monthly_rent", None)
    return to_decimal(rent, "rent_amount")


def prorate_rent(rent_amount: Any, occupancy: Occupancy) -> Decimal:
    rent = to_decimal(rent_amount, "rent_amount")
    if occupancy.is_full_month:
        return rent
    return round_amount(rent * occupancy.elapsed_days / occupancy.total_days)


def compute_processing_fee(prorated_rent: Any) -> Decimal:
    return round_amount(to_decimal(prorated_rent) * PROCESSING_FEE_RATE)


def build_charges(totals: Dict[str, Decimal]) -> List[Dict[str, Any]]:
    """Ordered line items; Rent always, the rest only when non-zero."""
    charges = [{"title": RENT_TITLE, "amount": totals["rent"]}]
    if totals["electricity"]:
        charges.append({"title": ELECTRICITY_TITLE, "amount": totals["electricity"]})
    if totals["additional_amount"]:
        charges.append({"title": ADDITIONAL_TITLE, "amount": totals["additional_amount"]})
    if totals["discount"]:
        charges.append({"title": DISCOUNT_TITLE, "amount": -totals["discount"]})
    if totals["processing_fee"]:
        charges.append({"title": PROCESSING_FEE_TITLE, "amount": totals["processing_fee"]})
    return charges


def aggregate_charges(
    occupancy: Occupancy,
    rent_amount: Any,
    electricity: Any = 0,
    additional_amount: Any = 0,
    discount: Any = 0,
    include_processing_fee: bool = False,
    prorate: bool = True,
) -> ChargeBreakdown:
    """
    Build the charge breakdown for one tenant-month.

    Args:
        occupancy: Resolved occupancy; must be active
        rent_amount: Monthly rent before proration
        electricity: Electricity charge, >= 0
        additional_amount: Rolled-up additional charges, >= 0
        discount: Discount magnitude, >= 0
        include_processing_fee: Add 2% of the prorated rent
        prorate: False bills the full monthly rent regardless of occupied days

    Returns:
        ChargeBreakdown

    Raises:
        BillingValidationError: Inactive occupancy, negative inputs or a
            total that is not positive
    """
    if not occupancy.is_active:
        raise BillingValidationError(
            "Tenant was not resident during the billing month",
            details={"year": occupancy.year, "month": occupancy.month},
        )

    values = {
        "rent_amount": to_decimal(rent_amount, "rent_amount"),
        "electricity": to_decimal(electricity, "electricity"),
        "additional_amount": to_decimal(additional_amount, "additional_amount"),
        "discount": to_decimal(discount, "discount"),
    }
    for name, value in values.items():
        if value < 0:
            raise BillingValidationError(
                f"{name} cannot be negative",
                details={"field": name, "value": str(value)},
            )

    rent = prorate_rent(values["rent_amount"], occupancy) if prorate else values["rent_amount"]
    fee = compute_processing_fee(rent) if include_processing_fee else ZERO

    totals = {
        "rent": rent,
        "electricity": values["electricity"],
        "processing_fee": fee,
        "additional_amount": values["additional_amount"],
        "discount": values["discount"],
    }
    total_amount = int(round_amount(
        rent + totals["electricity"] + totals["additional_amount"] - totals["discount"] + fee
    ))
    if total_amount <= 0:
        raise BillingValidationError(
            "Total amount must be greater than zero",
            details={"total_amount": total_amount},
        )

    return ChargeBreakdown(
        charges=build_charges(totals),
        totals=totals,
        total_amount=total_amount,
        elapsed_days=occupancy.elapsed_days,
        total_days=occupancy.total_days,
    )


def normalize_charges(charges: List[Any]) -> List[Dict[str, Any]]:
    """Validate manually entered line items into ``{title, amount}`` dicts."""
    normalized = []
    for index, charge in enumerate(charges or []):
        if isinstance(charge, dict):
            title, amount = charge.get("title"), charge.get("amount")
        else:
            title, amount = getattr(charge, "title", None), getattr(charge, "amount", None)
        title = (title or "").strip()
        if not title:
            raise BillingValidationError(
                f"Charge #{index + 1} is missing a title",
                details={"index": index},
            )
        normalized.append({"title": title, "amount": to_decimal(amount, f"charges[{index}].amount")})
    return normalized


def sum_charges(charges: List[Dict[str, Any]]) -> int:
    """Rounded sum of line item amounts."""
    return int(round_amount(sum((to_decimal(c.get("amount")) for c in charges), ZERO)))


def derive_totals_from_charges(charges: List[Dict[str, Any]]) -> Dict[str, Decimal]:
    """
    Rebuild the totals snapshot from line item titles.

    Titles are matched case-insensitively: rent, electric, processing,
    additional/maintenance, discount. Anything else counts as additional.
    """
    totals = {
        "rent": ZERO,
        "electricity": ZERO,
        "processing_fee": ZERO,
        "additional_amount": ZERO,
        "discount": ZERO,
    }
    for charge in charges:
        title = str(charge.get("title", "")).lower()
        amount = to_decimal(charge.get("amount"))
        if "rent" in title:
            totals["rent"] += amount
        elif "electric" in title:
            totals["electricity"] += amount
        elif "processing" in title:
            totals["processing_fee"] += amount
        elif "discount" in title:
            totals["discount"] += abs(amount)
        else:
            # additional, maintenance and any other room charge
            totals["additional_amount"] += amount
    return totals
