"""
Bill payment state machine.

NOT_PAID -> PAID is the only transition and PAID is terminal. Once a bill is
paid its financial fields are frozen; only notes, links and gateway
bookkeeping may still change.
"""
from typing import Dict, FrozenSet, Iterable, List

from rentbill.core.errors import AlreadyPaidError
from rentbill.models.bill import BillPaymentStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

BILL_TRANSITIONS: Dict[str, List[str]] = {
    BillPaymentStatus.NOT_PAID.value: [BillPaymentStatus.PAID.value],
    BillPaymentStatus.PAID.value: [],  # Terminal state
}

FINANCIAL_FIELDS: FrozenSet[str] = frozenset({
    "charges",
    "totals",
    "total_amount",
})

POST_PAYMENT_EDITABLE_FIELDS: FrozenSet[str] = frozenset({
    "notes",
    "payment_link",
    "payment_method",
    "razorpay_order_id",
    "razorpay_payment_id",
    "razorpay_payment_link_id",
})


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in BILL_TRANSITIONS.get(current_status, [])


def validate_payment(bill) -> None:
    """Raise AlreadyPaidError unless the bill can move to PAID."""
    if not can_transition(bill.payment_status, BillPaymentStatus.PAID.value):
        raise AlreadyPaidError(
            f"Bill {bill.id} is already paid",
            details={"bill_id": str(bill.id), "paid_at": bill.paid_at.isoformat() if bill.paid_at else None},
        )


def validate_edit(bill, fields: Iterable[str]) -> None:
    """
    Reject edits of financial fields on a paid bill.

    Raises:
        AlreadyPaidError: With error code BILL_FINANCIALS_FROZEN
    """
    if bill.payment_status != BillPaymentStatus.PAID.value:
        return
    frozen = sorted(set(fields) - POST_PAYMENT_EDITABLE_FIELDS)
    if frozen:
        raise AlreadyPaidError(
            f"Bill {bill.id} is paid; {', '.join(frozen)} can no longer be changed",
            error_code="BILL_FINANCIALS_FROZEN",
            details={"bill_id": str(bill.id), "fields": frozen},
        )


def can_delete(status: str) -> bool:
    """Only unpaid bills may be deleted."""
    return status == BillPaymentStatus.NOT_PAID.value
