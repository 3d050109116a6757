"""Payment schemas for Razorpay API requests/responses."""
from typing import Optional

from pydantic import BaseModel, Field
import uuid


class BillPaymentOrderResponse(BaseModel):
    """Razorpay order created for a bill."""
    bill_id: uuid.UUID
    razorpay_order_id: str
    amount: int = Field(..., description="Amount in paise")
    currency: str
    key_id: str = Field(..., description="Razorpay Key ID for checkout")


class VerifyBillPaymentRequest(BaseModel):
    """Checkout callback payload."""
    bill_id: uuid.UUID
    razorpay_order_id: str = Field(..., description="Razorpay order ID")
    razorpay_payment_id: str = Field(..., description="Razorpay payment ID")
    razorpay_signature: str = Field(..., description="Razorpay signature for verification")


class BillPaymentLinkResponse(BaseModel):
    """Razorpay payment link created for a bill."""
    bill_id: uuid.UUID
    payment_link_id: str
    short_url: str
    amount: int = Field(..., description="Amount in paise")
    status: Optional[str] = None
