import asyncio

import pytest

from rentbill.schemas.bill import BillCreate
from rentbill.services.bill_dispatcher import (
    BillDispatcher,
    DispatchJob,
    DispatchKind,
    InMemoryDispatchQueue,
)
from rentbill.services.bill_lifecycle_service import BillLifecycleService
from rentbill.services.notification_service import NotificationType

from tests.helpers import make_document, utc


class FakeRenderer:
    def __init__(self, fail=False):
        self.fail = fail
        self.rendered = []

    def write(self, document):
        if self.fail:
            raise OSError("disk full")
        self.rendered.append(document.bill_id)
        return f"/tmp/bill_{document.bill_id}.pdf"


class FakeNotifier:
    def __init__(self, email_error=None):
        self.email_error = email_error
        self.emails = []
        self.messages = []

    async def send_email(self, document, notification_type, pdf_path=None):
        if self.email_error:
            raise self.email_error
        self.emails.append((document.bill_id, notification_type, pdf_path))
        return True

    async def send_whatsapp(self, document, notification_type):
        self.messages.append((document.bill_id, notification_type))
        return True


@pytest.fixture
def queue():
    return InMemoryDispatchQueue(interval=0)


async def test_bill_issued_renders_and_notifies(queue):
    renderer, notifier = FakeRenderer(), FakeNotifier()
    dispatcher = BillDispatcher(renderer=renderer, notifier=notifier, queue=queue)
    document = make_document()

    report = await dispatcher.process(DispatchJob(kind=DispatchKind.BILL_ISSUED, document=document))

    assert report == {"document": True, "email": True, "whatsapp": True}
    assert notifier.emails == [
        (document.bill_id, NotificationType.BILL_ISSUED, f"/tmp/bill_{document.bill_id}.pdf")
    ]


async def test_bill_updated_only_renders(queue):
    notifier = FakeNotifier()
    dispatcher = BillDispatcher(renderer=FakeRenderer(), notifier=notifier, queue=queue)

    report = await dispatcher.process(DispatchJob(kind=DispatchKind.BILL_UPDATED, document=make_document()))

    assert report == {"document": True}
    assert notifier.emails == notifier.messages == []


async def test_render_failure_still_notifies(queue):
    notifier = FakeNotifier()
    dispatcher = BillDispatcher(renderer=FakeRenderer(fail=True), notifier=notifier, queue=queue)
    document = make_document()

    report = await dispatcher.process(DispatchJob(kind=DispatchKind.BILL_ISSUED, document=document))

    assert report == {"document": False, "email": True, "whatsapp": True}
    assert notifier.emails[0][2] is None


async def test_email_failure_does_not_block_whatsapp(queue):
    notifier = FakeNotifier(email_error=ConnectionError("smtp down"))
    dispatcher = BillDispatcher(renderer=FakeRenderer(), notifier=notifier, queue=queue)

    report = await dispatcher.process(DispatchJob(kind=DispatchKind.BILL_ISSUED, document=make_document()))

    assert report["email"] is False
    assert report["whatsapp"] is True


async def test_payment_cancels_pending_jobs_for_that_bill(queue):
    dispatcher = BillDispatcher(renderer=FakeRenderer(), notifier=FakeNotifier(), queue=queue)
    paid = make_document()
    other = make_document()

    dispatcher.submit(DispatchKind.BILL_ISSUED, paid)
    dispatcher.submit(DispatchKind.BILL_ISSUED, other)
    dispatcher.submit(DispatchKind.PAYMENT_RECEIVED, paid.model_copy(update={"payment_status": "PAID"}))

    assert [(job.kind, job.bill_id) for job in queue.pending()] == [
        (DispatchKind.BILL_ISSUED, other.bill_id),
        (DispatchKind.PAYMENT_RECEIVED, paid.bill_id),
    ]


async def test_cancel_pending_by_bill(queue):
    dispatcher = BillDispatcher(renderer=FakeRenderer(), notifier=FakeNotifier(), queue=queue)
    document = make_document()
    dispatcher.submit(DispatchKind.BILL_ISSUED, document)
    dispatcher.submit(DispatchKind.BILL_UPDATED, document)

    assert dispatcher.cancel_pending(document.bill_id) == 2
    assert len(queue) == 0


async def test_drain_runs_jobs_in_order(queue):
    renderer = FakeRenderer()
    dispatcher = BillDispatcher(renderer=renderer, notifier=FakeNotifier(), queue=queue)
    documents = [make_document() for _ in range(3)]
    for document in documents:
        dispatcher.submit(DispatchKind.BILL_UPDATED, document)

    processed = await queue.drain(dispatcher.process)

    assert processed == 3
    assert renderer.rendered == [d.bill_id for d in documents]


async def test_failing_handler_does_not_stop_the_queue(queue):
    seen = []

    async def handler(job):
        seen.append(job.bill_id)
        raise RuntimeError("boom")

    queue.enqueue(DispatchJob(kind=DispatchKind.BILL_UPDATED, document=make_document()))
    queue.enqueue(DispatchJob(kind=DispatchKind.BILL_UPDATED, document=make_document()))

    assert await queue.drain(handler) == 2
    assert len(seen) == 2


async def test_background_worker_processes_submissions(queue):
    renderer = FakeRenderer()
    dispatcher = BillDispatcher(renderer=renderer, notifier=FakeNotifier(), queue=queue)
    dispatcher.start()
    document = make_document()

    dispatcher.submit(DispatchKind.BILL_ISSUED, document)
    for _ in range(50):
        if renderer.rendered:
            break
        await asyncio.sleep(0.01)
    await dispatcher.stop()

    assert renderer.rendered == [document.bill_id]


async def test_render_records_pdf_path_on_bill(db, session_factory, make_tenant, room):
    tenant = await make_tenant(room, utc(2026, 1, 1))
    lifecycle = BillLifecycleService(db)
    bill = await lifecycle.create_bill_from_charges(BillCreate(
        tenant_id=tenant.id,
        room_id=room.id,
        billing_month="2026-06",
        charges=[{"title": "Rent", "amount": 3000}],
    ))
    document = await lifecycle.repository.load_document(bill.id)
    await db.commit()

    dispatcher = BillDispatcher(
        renderer=FakeRenderer(),
        notifier=FakeNotifier(),
        queue=InMemoryDispatchQueue(interval=0),
        session_factory=session_factory,
    )
    path = await dispatcher.render_document(document)
    await db.refresh(bill)

    assert bill.pdf_url == path
