import uuid

import pytest

from rentbill.services.document_service import (
    BillDocumentRenderer,
    bill_payment_link,
    format_amount,
)
from rentbill.services.email_service import EmailService, WhatsAppService
from rentbill.services.notification_service import (
    BillNotifier,
    NotificationType,
    render_bill_email,
    render_bill_whatsapp,
)

from tests.helpers import make_document


class RecordingEmailService:
    def __init__(self):
        self.sent = []

    def send_email(self, to_email, subject, html_content, text_content=None, attachments=None):
        self.sent.append((to_email, subject, attachments))
        return True


class RecordingWhatsAppService:
    def __init__(self):
        self.sent = []

    async def send_message(self, phone, body):
        self.sent.append((phone, body))
        return True


def test_renderer_writes_a_pdf(tmp_path):
    document = make_document(
        charges=[
            {"title": "Rent", "amount": 2100},
            {"title": "Electricity", "amount": 200},
            {"title": "Processing Fee", "amount": 42},
        ],
        total_amount=2342,
        notes="Welcome!",
    )
    renderer = BillDocumentRenderer(output_dir=str(tmp_path))

    path = renderer.write(document)

    assert path == renderer.file_path(document.bill_id)
    with open(path, "rb") as f:
        assert f.read(4) == b"%PDF"


def test_payment_link_prefers_bill_url():
    bill_id = uuid.uuid4()

    assert bill_payment_link(bill_id, "https://rzp.io/l/abc") == "https://rzp.io/l/abc"
    assert bill_payment_link(bill_id, "not a link").endswith(f"/payment/public/{bill_id}")


@pytest.mark.parametrize("amount,expected", [
    (2342, "Rs. 2,342"),
    (-100, "Rs. -100"),
    ("33.5", "Rs. 33.50"),
])
def test_format_amount(amount, expected):
    assert format_amount(amount) == expected


def test_whatsapp_bill_message():
    document = make_document(total_amount=2342)

    message = render_bill_whatsapp(document, NotificationType.BILL_ISSUED)

    assert "June 2026" in message
    assert "Rs. 2,342" in message
    assert "Your ID: T001" in message
    assert document.download_link in message


def test_payment_email_shows_paid_status():
    document = make_document(payment_status="PAID", payment_reference="UTR99", payment_method="UPI")

    html = render_bill_email(document, NotificationType.PAYMENT_RECEIVED)

    assert "PAID" in html
    assert "UTR99" in html
    assert "Pay Now" not in html


async def test_notifier_attaches_pdf():
    email, whatsapp = RecordingEmailService(), RecordingWhatsAppService()
    notifier = BillNotifier(email_service=email, whatsapp_service=whatsapp)
    document = make_document()

    assert await notifier.send_email(document, NotificationType.BILL_ISSUED, "/tmp/bill.pdf")
    assert await notifier.send_whatsapp(document, NotificationType.BILL_ISSUED)

    to_email, subject, attachments = email.sent[0]
    assert to_email == "asha@example.com"
    assert subject.startswith("Rent bill for June 2026")
    assert attachments == ["/tmp/bill.pdf"]
    assert whatsapp.sent[0][0] == "9876543210"


async def test_notifier_skips_missing_contacts():
    email, whatsapp = RecordingEmailService(), RecordingWhatsAppService()
    notifier = BillNotifier(email_service=email, whatsapp_service=whatsapp)
    document = make_document(tenant_email=None, tenant_phone=None)

    assert await notifier.send_email(document, NotificationType.BILL_ISSUED) is False
    assert await notifier.send_whatsapp(document, NotificationType.BILL_ISSUED) is False
    assert email.sent == whatsapp.sent == []


def test_unconfigured_email_reports_failure():
    assert EmailService().send_email("a@example.com", "s", "<p>x</p>") is False


async def test_unconfigured_whatsapp_reports_failure():
    assert await WhatsAppService().send_message("9876543210", "hi") is False


def test_local_numbers_get_country_prefix():
    service = WhatsAppService(default_country_prefix="+91")

    assert service.normalize_phone("98765 43210") == "+919876543210"
    assert service.normalize_phone("+14155238886") == "+14155238886"
