"""
Bill invoice documents.

build_bill_document() turns a loaded bill into the denormalized BillDocument
snapshot; BillDocumentRenderer draws that snapshot as a one-page A4 invoice
with reportlab. Rendering is synchronous and CPU bound; async callers run it
in a worker thread.
"""
import io
import logging
import os
from decimal import Decimal
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from rentbill.config import settings
from rentbill.schemas.bill import BillDocument

logger = logging.getLogger(__name__)


def bill_download_link(bill_id) -> str:
    return f"{settings.BACKEND_URL.rstrip('/')}/api/v1/bills/{bill_id}/pdf"


def bill_payment_link(bill_id, payment_link: Optional[str] = None) -> str:
    """The bill's own link when it is a URL, else the public payment page."""
    if payment_link and payment_link.startswith(("http://", "https://")):
        return payment_link
    return f"{settings.FRONTEND_URL.rstrip('/')}/payment/public/{bill_id}"


def build_bill_document(bill) -> BillDocument:
    """Snapshot a bill loaded with its tenant, room and building."""
    tenant, room, building = bill.tenant, bill.room, bill.building
    return BillDocument(
        bill_id=bill.id,
        billing_month=bill.billing_month,
        tenant_code=tenant.tenant_code,
        tenant_name=tenant.full_name,
        tenant_phone=tenant.phone,
        tenant_email=tenant.email,
        room_number=room.number,
        building_name=building.name,
        building_address=building.address,
        charges=bill.charges or [],
        totals=bill.totals,
        total_amount=bill.total_amount,
        due_date=bill.due_date,
        payment_status=bill.payment_status,
        payment_method=bill.payment_method,
        payment_reference=bill.payment_reference,
        paid_at=bill.paid_at,
        notes=bill.notes,
        payment_link=bill_payment_link(bill.id, bill.payment_link),
        download_link=bill_download_link(bill.id),
        currency=settings.CURRENCY,
    )


def format_amount(amount) -> str:
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return f"Rs. {int(value):,}"
    return f"Rs. {value:,.2f}"


class BillDocumentRenderer:
    """Renders bill snapshots to PDF files under a directory."""

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = output_dir or settings.PDF_DIR

    def file_path(self, bill_id) -> str:
        return os.path.join(self.output_dir, f"bill_{bill_id}.pdf")

    def render(self, document: BillDocument) -> bytes:
        """Draw the invoice and return the PDF bytes."""
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=A4)
        W, H = A4
        c.setTitle(f"Rent Bill {document.month_label} - {document.tenant_code}")

        # Header
        c.setFont("Helvetica-Bold", 16)
        c.drawString(20*mm, H-22*mm, document.building_name)
        c.setFont("Helvetica", 9)
        if document.building_address:
            c.drawString(20*mm, H-28*mm, document.building_address[:110])
        c.setFont("Helvetica-Bold", 13)
        c.drawRightString(W-20*mm, H-22*mm, "RENT INVOICE")
        c.setFont("Helvetica", 10)
        c.drawRightString(W-20*mm, H-28*mm, document.month_label)
        c.line(20*mm, H-33*mm, W-20*mm, H-33*mm)

        # Tenant block
        y = H-42*mm
        rows = [
            ("Tenant", f"{document.tenant_name} ({document.tenant_code})"),
            ("Room", document.room_number),
            ("Phone", document.tenant_phone or "-"),
            ("Email", document.tenant_email or "-"),
            ("Due Date", document.due_date.strftime("%d %b %Y") if document.due_date else "-"),
        ]
        for label, value in rows:
            c.setFont("Helvetica-Bold", 10)
            c.drawString(20*mm, y, f"{label}:")
            c.setFont("Helvetica", 10)
            c.drawString(50*mm, y, str(value))
            y -= 6*mm

        # Charges table
        y -= 4*mm
        c.setFont("Helvetica-Bold", 11)
        c.drawString(20*mm, y, "Description")
        c.drawRightString(W-20*mm, y, "Amount")
        y -= 2*mm
        c.line(20*mm, y, W-20*mm, y)
        y -= 6*mm
        c.setFont("Helvetica", 10)
        for charge in document.charges:
            c.drawString(20*mm, y, charge.title)
            c.drawRightString(W-20*mm, y, format_amount(charge.amount))
            y -= 6*mm
        c.line(20*mm, y+3*mm, W-20*mm, y+3*mm)
        c.setFont("Helvetica-Bold", 12)
        c.drawString(20*mm, y-3*mm, "Total")
        c.drawRightString(W-20*mm, y-3*mm, format_amount(document.total_amount))
        y -= 16*mm

        # Payment block
        c.setFont("Helvetica-Bold", 11)
        if document.is_paid:
            c.setFillColorRGB(0.1, 0.55, 0.2)
            c.drawString(20*mm, y, "PAID")
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica", 10)
            paid_at = document.paid_at.strftime("%d %b %Y %H:%M") if document.paid_at else "-"
            c.drawString(20*mm, y-6*mm, f"Method: {document.payment_method or '-'}")
            c.drawString(20*mm, y-12*mm, f"Reference: {document.payment_reference or '-'}")
            c.drawString(20*mm, y-18*mm, f"Paid At: {paid_at}")
            y -= 26*mm
        else:
            c.setFillColorRGB(0.75, 0.1, 0.1)
            c.drawString(20*mm, y, "UNPAID")
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica", 10)
            c.drawString(20*mm, y-6*mm, f"Pay online: {document.payment_link}")
            y -= 14*mm

        if document.notes:
            c.setFont("Helvetica-Oblique", 9)
            c.drawString(20*mm, y, f"Notes: {document.notes[:120]}")

        c.setFont("Helvetica", 8)
        c.drawCentredString(W/2, 15*mm, "This is a computer generated bill.")
        c.showPage()
        c.save()
        return buf.getvalue()

    def write(self, document: BillDocument) -> str:
        """Render and write the PDF; returns the file path."""
        data = self.render(document)
        os.makedirs(self.output_dir, exist_ok=True)
        path = self.file_path(document.bill_id)
        with open(path, "wb") as f:
            f.write(data)
        logger.info(f"Bill document written: {path}")
        return path
