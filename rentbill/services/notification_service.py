"""
Tenant bill notifications.

Formats bill-issued and payment-received messages from a BillDocument
snapshot and hands them to the email and WhatsApp transports.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional

from rentbill.schemas.bill import BillDocument
from rentbill.services.document_service import format_amount
from rentbill.services.email_service import (
    EmailService,
    WhatsAppService,
    get_email_service,
    get_whatsapp_service,
)

logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Notification delivery channels."""
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class NotificationType(str, Enum):
    """Types of bill notifications."""
    BILL_ISSUED = "bill_issued"
    PAYMENT_RECEIVED = "payment_received"


EMAIL_SUBJECTS = {
    NotificationType.BILL_ISSUED: "Rent bill for {month_label} ({building_name} Room {room_number})",
    NotificationType.PAYMENT_RECEIVED: "Payment received for {month_label} ({building_name} Room {room_number})",
}

WHATSAPP_TEMPLATES = {
    NotificationType.BILL_ISSUED: (
        "Dear {tenant_name},\n"
        "Your rent bill for {month_label} is {amount}.\n\n"
        "Your ID: {tenant_code}\n"
        "Room Number: {room_number}\n"
        "Due Date: {due_date}\n"
        "Download Bill: {download_link}\n"
        "Pay Online: {payment_link}"
    ),
    NotificationType.PAYMENT_RECEIVED: (
        "Dear {tenant_name},\n"
        "We received {amount} for your {month_label} rent. Thank you!\n\n"
        "Your ID: {tenant_code}\n"
        "Room Number: {room_number}\n"
        "Payment Reference: {reference}\n"
        "Paid At: {paid_at}\n"
        "Download Bill: {download_link}"
    ),
}


def _template_values(document: BillDocument) -> dict:
    return {
        "tenant_name": document.tenant_name,
        "tenant_code": document.tenant_code,
        "room_number": document.room_number,
        "building_name": document.building_name,
        "month_label": document.month_label,
        "amount": format_amount(document.total_amount),
        "due_date": document.due_date.strftime("%d %b %Y") if document.due_date else "N/A",
        "reference": document.payment_reference or "N/A",
        "paid_at": document.paid_at.strftime("%d %b %Y %H:%M") if document.paid_at else "N/A",
        "download_link": document.download_link,
        "payment_link": document.payment_link,
    }


def render_bill_email(document: BillDocument, notification_type: NotificationType) -> str:
    """HTML body for a bill email."""
    values = _template_values(document)
    lines = "".join(
        f"<li>{charge.title}: {format_amount(charge.amount)}</li>" for charge in document.charges
    )
    if document.is_paid:
        status_html = (
            f"<p><strong>Status:</strong> PAID</p>"
            f"<p><strong>Reference:</strong> {values['reference']}<br>"
            f"<strong>Method:</strong> {document.payment_method or 'N/A'}<br>"
            f"<strong>Paid At:</strong> {values['paid_at']}</p>"
        )
        pay_html = ""
    else:
        status_html = "<p><strong>Payment Status:</strong> Unpaid</p>"
        pay_html = (
            f'<p><a href="{values["payment_link"]}" style="background:#007bff;color:white;'
            f'padding:8px 16px;border-radius:6px;text-decoration:none;">Pay Now</a></p>'
        )
    intro = (
        f"We have received your payment for <strong>{values['month_label']}</strong>."
        if notification_type == NotificationType.PAYMENT_RECEIVED
        else f"Your rent bill for <strong>{values['month_label']}</strong> is ready."
    )
    return f"""
        <p>Dear {values['tenant_name']},</p>
        <p>{intro}</p>
        <p><strong>Your ID:</strong> {values['tenant_code']}<br>
        <strong>Room Number:</strong> {values['room_number']}</p>
        <ul>{lines}</ul>
        <p><strong>Total: {values['amount']}</strong></p>
        {status_html}
        <p>Download Bill: <a href="{values['download_link']}">Download Bill</a></p>
        {pay_html}
        <p>Thank you for staying with us.</p>
    """


def render_bill_whatsapp(document: BillDocument, notification_type: NotificationType) -> str:
    return WHATSAPP_TEMPLATES[notification_type].format(**_template_values(document))


class BillNotifier:
    """Sends bill notifications to a tenant over email and WhatsApp."""

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        whatsapp_service: Optional[WhatsAppService] = None,
    ):
        self.email_service = email_service or get_email_service()
        self.whatsapp_service = whatsapp_service or get_whatsapp_service()

    async def send_email(
        self,
        document: BillDocument,
        notification_type: NotificationType,
        pdf_path: Optional[str] = None,
    ) -> bool:
        if not document.tenant_email:
            logger.warning(f"Email skipped for bill {document.bill_id}: tenant email missing")
            return False
        subject = EMAIL_SUBJECTS[notification_type].format(**_template_values(document))
        html = render_bill_email(document, notification_type)
        # smtplib blocks; keep it off the event loop
        return await asyncio.to_thread(
            self.email_service.send_email,
            document.tenant_email,
            subject,
            html,
            None,
            [pdf_path] if pdf_path else None,
        )

    async def send_whatsapp(self, document: BillDocument, notification_type: NotificationType) -> bool:
        if not document.tenant_phone:
            logger.warning(f"WhatsApp skipped for bill {document.bill_id}: tenant phone missing")
            return False
        return await self.whatsapp_service.send_message(
            document.tenant_phone,
            render_bill_whatsapp(document, notification_type),
        )
