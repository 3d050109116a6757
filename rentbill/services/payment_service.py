"""
Payment Service - Razorpay Integration

Gateway side of bill payments:
- Create Razorpay orders and payment links for unpaid bills
- Verify checkout signatures and settle the bill
- Verify and apply payment webhooks

Signature checks happen here; the bill lifecycle only ever sees a
payment that has already been verified.
"""

import hashlib
import hmac
import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rentbill.config import settings
from rentbill.core.errors import AlreadyPaidError, BillingValidationError, NotFoundError
from rentbill.models.bill import PaymentMethod
from rentbill.schemas.payment import (
    BillPaymentLinkResponse,
    BillPaymentOrderResponse,
    VerifyBillPaymentRequest,
)
from rentbill.services.bill_lifecycle_service import BillLifecycleService
from rentbill.services.bill_repository import BillRepository

logger = logging.getLogger(__name__)

ONLINE_PAYMENT_METHOD = PaymentMethod.ONLINE.value


# Webhook event types
class WebhookEvent:
    """Razorpay webhook event types."""
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    ORDER_PAID = "order.paid"
    PAYMENT_LINK_PAID = "payment_link.paid"


SETTLING_EVENTS = {WebhookEvent.PAYMENT_CAPTURED, WebhookEvent.ORDER_PAID, WebhookEvent.PAYMENT_LINK_PAID}


def _parse_bill_id(value: Any) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning(f"Ignoring malformed bill_id note {value!r}")
        return None


class PaymentService:
    """
    Service for handling Razorpay payments of bills.
    """

    def __init__(
        self,
        db: AsyncSession,
        dispatcher=None,
        client=None,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self.db = db
        self.repository = BillRepository(db)
        self.lifecycle = BillLifecycleService(db, dispatcher=dispatcher)
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        self._client = client

    @property
    def client(self):
        """Razorpay client, built on first use."""
        if self._client is None:
            if not self.key_id or not self.key_secret:
                raise BillingValidationError(
                    "Razorpay is not configured",
                    error_code="GATEWAY_NOT_CONFIGURED",
                )
            import razorpay

            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    async def create_order_for_bill(self, bill_id: uuid.UUID) -> BillPaymentOrderResponse:
        """
        Create a Razorpay order for an unpaid bill and remember its id.

        Raises:
            NotFoundError: Bill missing
            AlreadyPaidError: Bill already paid
        """
        bill = await self.repository.get_bill_or_404(bill_id)
        if bill.is_paid:
            raise AlreadyPaidError(f"Bill {bill_id} is already paid", details={"bill_id": str(bill_id)})

        # Razorpay uses the smallest currency unit
        amount_in_paise = int(bill.total_amount * 100)
        order_data = {
            "amount": amount_in_paise,
            "currency": settings.CURRENCY,
            "receipt": f"bill_{bill.id}",
            "notes": {"bill_id": str(bill.id), "tenant_id": str(bill.tenant_id)},
        }
        razorpay_order = self.client.order.create(data=order_data)
        logger.info(f"Created Razorpay order {razorpay_order['id']} for bill {bill.id}")

        await self.repository.update_bill(bill, {"razorpay_order_id": razorpay_order["id"]})
        await self.db.commit()

        return BillPaymentOrderResponse(
            bill_id=bill.id,
            razorpay_order_id=razorpay_order["id"],
            amount=amount_in_paise,
            currency=settings.CURRENCY,
            key_id=self.key_id,
        )

    async def create_payment_link_for_bill(self, bill_id: uuid.UUID) -> BillPaymentLinkResponse:
        """
        Create a Razorpay payment link for an unpaid bill and send it to the tenant.

        The link's short URL becomes the bill's payment link, so documents
        and notifications point at it from now on.

        Raises:
            NotFoundError: Bill missing
            AlreadyPaidError: Bill already paid
        """
        bill = await self.repository.get_bill_or_404(bill_id)
        if bill.is_paid:
            raise AlreadyPaidError(f"Bill {bill_id} is already paid", details={"bill_id": str(bill_id)})

        tenant = await self.repository.get_tenant(bill.tenant_id)
        customer = {"name": tenant.full_name if tenant else "Tenant"}
        if tenant and tenant.email:
            customer["email"] = tenant.email
        if tenant and tenant.phone:
            customer["contact"] = tenant.phone

        amount_in_paise = int(bill.total_amount * 100)
        link_data = {
            "amount": amount_in_paise,
            "currency": settings.CURRENCY,
            "accept_partial": False,
            "reference_id": f"bill_{bill.id}",
            "description": f"Rent for {bill.billing_month.strftime('%B %Y')}",
            "customer": customer,
            "notify": {"sms": True, "email": True},
            "reminder_enable": True,
            "notes": {"bill_id": str(bill.id), "tenant_id": str(bill.tenant_id)},
        }
        link = self.client.payment_link.create(data=link_data)
        logger.info(f"Created Razorpay payment link {link['id']} for bill {bill.id}")

        await self.repository.update_bill(bill, {
            "payment_link": link["short_url"],
            "razorpay_payment_link_id": link["id"],
        })
        await self.db.commit()

        await self.lifecycle.resend_notifications(bill.id)

        return BillPaymentLinkResponse(
            bill_id=bill.id,
            payment_link_id=link["id"],
            short_url=link["short_url"],
            amount=amount_in_paise,
            status=link.get("status"),
        )

    def verify_payment_signature(self, razorpay_order_id: str, razorpay_payment_id: str, signature: str) -> bool:
        """HMAC-SHA256 of "order_id|payment_id" with the key secret."""
        if not self.key_secret:
            logger.warning("Razorpay key secret not configured")
            return False
        payload = f"{razorpay_order_id}|{razorpay_payment_id}"
        expected_signature = hmac.new(
            self.key_secret.encode(),
            payload.encode(),
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected_signature, signature or "")

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        """
        Verify Razorpay webhook signature.

        Args:
            body: Raw request body bytes
            signature: X-Razorpay-Signature header value
        """
        if not self.webhook_secret:
            logger.warning("Webhook secret not configured")
            return False

        expected_signature = hmac.new(
            self.webhook_secret.encode(),
            body,
            hashlib.sha256
        ).hexdigest()
        is_valid = hmac.compare_digest(expected_signature, signature or "")
        if not is_valid:
            logger.warning("Invalid webhook signature")
        return is_valid

    async def verify_and_settle(self, request: VerifyBillPaymentRequest):
        """
        Settle a bill from a checkout callback.

        Raises:
            BillingValidationError: Signature invalid or order does not belong to the bill
        """
        if not self.verify_payment_signature(
            request.razorpay_order_id, request.razorpay_payment_id, request.razorpay_signature
        ):
            logger.warning(f"Invalid payment signature for bill {request.bill_id}")
            raise BillingValidationError("Invalid payment signature", error_code="INVALID_SIGNATURE")

        bill = await self.repository.get_bill_or_404(request.bill_id)
        if bill.razorpay_order_id and bill.razorpay_order_id != request.razorpay_order_id:
            raise BillingValidationError(
                "Payment order does not belong to this bill",
                error_code="ORDER_MISMATCH",
                details={"bill_id": str(bill.id), "razorpay_order_id": request.razorpay_order_id},
            )

        return await self.lifecycle.pay_bill(
            bill.id,
            payment_ref=request.razorpay_payment_id,
            method=ONLINE_PAYMENT_METHOD,
            razorpay_payment_id=request.razorpay_payment_id,
        )

    async def handle_webhook(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a verified webhook event.

        Settling events mark the bill paid; repeats for a bill that is
        already paid are acknowledged without error.
        """
        event_type = event.get("event")
        if event_type not in SETTLING_EVENTS:
            logger.info(f"Ignoring Razorpay webhook event {event_type}")
            return {"status": "ignored", "event": event_type}

        payload = event.get("payload", {})
        payment = payload.get("payment", {}).get("entity", {})
        order_id = payment.get("order_id")
        payment_id = payment.get("id")
        link_id = payload.get("payment_link", {}).get("entity", {}).get("id")

        bill = await self.repository.get_bill_by_order_id(order_id) if order_id else None
        if bill is None and link_id:
            bill = await self.repository.get_bill_by_payment_link_id(link_id)
        if bill is None:
            bill_id = _parse_bill_id((payment.get("notes") or {}).get("bill_id"))
            if bill_id:
                bill = await self.repository.get_bill(bill_id)
        if bill is None:
            raise NotFoundError(
                f"No bill for Razorpay order {order_id}",
                details={"razorpay_order_id": order_id, "razorpay_payment_link_id": link_id},
            )

        try:
            await self.lifecycle.pay_bill(
                bill.id,
                payment_ref=payment_id,
                method=ONLINE_PAYMENT_METHOD,
                razorpay_payment_id=payment_id,
            )
        except AlreadyPaidError:
            logger.info(f"Webhook {event_type} for already paid bill {bill.id}")
            return {"status": "already_paid", "bill_id": str(bill.id)}

        return {"status": "paid", "bill_id": str(bill.id)}
