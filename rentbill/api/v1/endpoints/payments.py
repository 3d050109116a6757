"""
Payment API endpoints for Razorpay integration.

Handles:
- Creating a Razorpay order or payment link for a bill
- Verifying the checkout callback and settling the bill
- Webhook handling
"""
import json
import logging
import uuid

from fastapi import APIRouter, Header, HTTPException, Request, status

from rentbill.api.deps import DB, Dispatcher
from rentbill.schemas.bill import BillResponse
from rentbill.schemas.payment import (
    BillPaymentLinkResponse,
    BillPaymentOrderResponse,
    VerifyBillPaymentRequest,
)
from rentbill.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/bills/{bill_id}/order",
    response_model=BillPaymentOrderResponse,
    summary="Create a Razorpay order for a bill",
)
async def create_bill_payment_order(bill_id: uuid.UUID, db: DB):
    service = PaymentService(db)
    return await service.create_order_for_bill(bill_id)


@router.post(
    "/bills/{bill_id}/link",
    response_model=BillPaymentLinkResponse,
    summary="Create a Razorpay payment link for a bill and send it to the tenant",
)
async def create_bill_payment_link(bill_id: uuid.UUID, db: DB, dispatcher: Dispatcher):
    service = PaymentService(db, dispatcher=dispatcher)
    return await service.create_payment_link_for_bill(bill_id)


@router.post(
    "/verify",
    response_model=BillResponse,
    summary="Verify a checkout payment and mark the bill paid",
)
async def verify_bill_payment(data: VerifyBillPaymentRequest, db: DB, dispatcher: Dispatcher):
    service = PaymentService(db, dispatcher=dispatcher)
    return await service.verify_and_settle(data)


@router.post("/webhook", summary="Razorpay webhook")
async def razorpay_webhook(
    request: Request,
    db: DB,
    dispatcher: Dispatcher,
    x_razorpay_signature: str = Header(None, alias="X-Razorpay-Signature"),
):
    body = await request.body()
    service = PaymentService(db, dispatcher=dispatcher)

    if not service.verify_webhook_signature(body, x_razorpay_signature):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        )

    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    logger.info(f"Received Razorpay webhook: {event.get('event')}")
    return await service.handle_webhook(event)
