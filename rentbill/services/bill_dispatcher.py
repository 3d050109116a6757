"""
Document and notification dispatch for bills.

Bill operations commit first and then call ``BillDispatcher.submit()``,
which only appends a job to a queue. A single background worker renders
the invoice PDF and sends the tenant notifications. Every step fails on its
own: a rendering error is logged and the notifications are still attempted,
and nothing here can undo a committed bill change.

Usage:
    dispatcher = get_bill_dispatcher()
    dispatcher.start()                       # app startup
    dispatcher.submit(DispatchKind.BILL_ISSUED, document)
    await dispatcher.stop()                  # app shutdown
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Awaitable, Callable, Deque, Dict, Optional

from sqlalchemy import update

from rentbill.config import settings
from rentbill.core.errors import SideEffectFailure
from rentbill.models.bill import Bill
from rentbill.schemas.bill import BillDocument
from rentbill.services.document_service import BillDocumentRenderer
from rentbill.services.notification_service import BillNotifier, NotificationChannel, NotificationType

logger = logging.getLogger(__name__)


class DispatchKind(str, Enum):
    """What happened to the bill."""
    BILL_ISSUED = "bill_issued"          # render + email + WhatsApp
    BILL_UPDATED = "bill_updated"        # render only
    PAYMENT_RECEIVED = "payment_received"  # render + email + WhatsApp


NOTIFICATION_TYPES = {
    DispatchKind.BILL_ISSUED: NotificationType.BILL_ISSUED,
    DispatchKind.PAYMENT_RECEIVED: NotificationType.PAYMENT_RECEIVED,
}


@dataclass
class DispatchJob:
    kind: DispatchKind
    document: BillDocument
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def bill_id(self) -> uuid.UUID:
        return self.document.bill_id


JobHandler = Callable[[DispatchJob], Awaitable[object]]


class DispatchQueue(ABC):
    """Asynchronous best-effort job queue with per-bill cancellation."""

    @abstractmethod
    def enqueue(self, job: DispatchJob) -> None:
        """Queue a job without waiting for it to run."""
        pass

    @abstractmethod
    def cancel_pending(self, bill_id: uuid.UUID) -> int:
        """Drop queued jobs for a bill. Returns how many were dropped."""
        pass

    @abstractmethod
    def start(self, handler: JobHandler) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass


class InMemoryDispatchQueue(DispatchQueue):
    """
    Single-worker in-process queue.

    Jobs run one at a time with a short pause between them so SMTP and
    WhatsApp providers are not hit in bursts during a batch run.
    """

    def __init__(self, interval: float = 0.5):
        self._jobs: Deque[DispatchJob] = deque()
        self._wakeup = asyncio.Event()
        self._interval = interval
        self._handler: Optional[JobHandler] = None
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._jobs)

    def pending(self, bill_id: Optional[uuid.UUID] = None) -> list:
        return [job for job in self._jobs if bill_id is None or job.bill_id == bill_id]

    def enqueue(self, job: DispatchJob) -> None:
        self._jobs.append(job)
        self._wakeup.set()

    def cancel_pending(self, bill_id: uuid.UUID) -> int:
        kept = [job for job in self._jobs if job.bill_id != bill_id]
        cancelled = len(self._jobs) - len(kept)
        self._jobs = deque(kept)
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending dispatch job(s) for bill {bill_id}")
        return cancelled

    def start(self, handler: JobHandler) -> None:
        self._handler = handler
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._jobs:
            logger.warning(f"Dispatch queue stopped with {len(self._jobs)} job(s) pending")

    async def drain(self, handler: Optional[JobHandler] = None) -> int:
        """Run every queued job now, in order. Returns how many ran."""
        handler = handler or self._handler
        processed = 0
        while self._jobs:
            await self._handle(handler, self._jobs.popleft())
            processed += 1
        return processed

    async def _handle(self, handler: JobHandler, job: DispatchJob) -> None:
        try:
            await handler(job)
        except Exception as e:
            logger.error(f"Dispatch job {job.kind.value} for bill {job.bill_id} failed: {e}")

    async def _run(self) -> None:
        while True:
            await self._wakeup.wait()
            while self._jobs:
                await self._handle(self._handler, self._jobs.popleft())
                if self._jobs and self._interval:
                    await asyncio.sleep(self._interval)
            self._wakeup.clear()


class BillDispatcher:
    """Renders bill documents and notifies tenants, off the request path."""

    def __init__(
        self,
        renderer: Optional[BillDocumentRenderer] = None,
        notifier: Optional[BillNotifier] = None,
        queue: Optional[DispatchQueue] = None,
        session_factory=None,
    ):
        self.renderer = renderer or BillDocumentRenderer()
        self.notifier = notifier or BillNotifier()
        self.queue = queue or InMemoryDispatchQueue(interval=settings.NOTIFICATION_INTERVAL_SECONDS)
        self.session_factory = session_factory

    def start(self) -> None:
        self.queue.start(self.process)

    async def stop(self) -> None:
        await self.queue.stop()

    def cancel_pending(self, bill_id: uuid.UUID) -> int:
        """Drop queued, not yet started jobs for a bill."""
        return self.queue.cancel_pending(bill_id)

    def submit(self, kind: DispatchKind, document: BillDocument) -> None:
        """
        Queue side effects for a bill. Never blocks and never raises.

        A payment supersedes anything still queued for the bill, so pending
        bill-issued notifications are cancelled first.
        """
        try:
            if kind == DispatchKind.PAYMENT_RECEIVED:
                self.queue.cancel_pending(document.bill_id)
            self.queue.enqueue(DispatchJob(kind=kind, document=document))
        except Exception as e:
            logger.error(f"Could not queue {kind.value} for bill {document.bill_id}: {e}")

    async def process(self, job: DispatchJob) -> Dict[str, bool]:
        """Run one job. Each step is attempted even if an earlier one failed."""
        report: Dict[str, bool] = {}
        pdf_path = None

        try:
            pdf_path = await self.render_document(job.document)
            report["document"] = True
        except SideEffectFailure as e:
            logger.error(e.message)
            report["document"] = False

        notification_type = NOTIFICATION_TYPES.get(job.kind)
        if notification_type is not None:
            report[NotificationChannel.EMAIL.value] = await self._notify(
                NotificationChannel.EMAIL, job, self.notifier.send_email(job.document, notification_type, pdf_path)
            )
            report[NotificationChannel.WHATSAPP.value] = await self._notify(
                NotificationChannel.WHATSAPP, job, self.notifier.send_whatsapp(job.document, notification_type)
            )

        logger.info(f"Dispatch {job.kind.value} for bill {job.bill_id}: {report}")
        return report

    async def render_document(self, document: BillDocument) -> str:
        """
        Write the invoice PDF and record its path on the bill.

        Raises:
            SideEffectFailure: Rendering or writing failed
        """
        try:
            path = await asyncio.to_thread(self.renderer.write, document)
        except Exception as e:
            raise SideEffectFailure(
                f"Rendering bill {document.bill_id} failed: {e}",
                error_code="DOCUMENT_RENDER_FAILED",
            ) from e

        if self.session_factory is not None:
            try:
                async with self.session_factory() as session:
                    await session.execute(
                        update(Bill).where(Bill.id == document.bill_id).values(pdf_url=path)
                    )
                    await session.commit()
            except Exception as e:
                logger.warning(f"Could not record pdf_url for bill {document.bill_id}: {e}")
        return path

    async def _notify(self, channel: NotificationChannel, job: DispatchJob, attempt: Awaitable[bool]) -> bool:
        try:
            sent = await attempt
        except Exception as e:
            logger.error(f"{channel.value} notification for bill {job.bill_id} raised: {e}")
            return False
        if not sent:
            logger.warning(f"{channel.value} notification for bill {job.bill_id} was not delivered")
        return bool(sent)


@lru_cache()
def get_bill_dispatcher() -> BillDispatcher:
    """Process-wide dispatcher bound to the application database."""
    from rentbill.database import async_session_factory

    return BillDispatcher(session_factory=async_session_factory)
