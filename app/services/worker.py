import logging
import socket
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.db import SessionLocal
from app.models.reminder import Reminder
from app.schemas.job import NotificationJobPayload
from app.services import notification_log
from app.services.email import EmailService
from app.services.messages import compose_message
from app.services.queue import Job, JobOutcome, JobQueue
from app.services.whatsapp import WhatsAppService

logger = logging.getLogger(__name__)


class NotificationWorker:
    def __init__(
        self,
        queue: JobQueue,
        email_service: EmailService,
        whatsapp_service: WhatsAppService,
        session_factory: sessionmaker = SessionLocal,
        *,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        stalled_interval: Optional[float] = None,
        worker_id: Optional[str] = None,
    ):
        self.queue = queue
        self.email_service = email_service
        self.whatsapp_service = whatsapp_service
        self._session_factory = session_factory
        self.concurrency = concurrency or settings.worker_concurrency
        self.poll_interval = poll_interval if poll_interval is not None else settings.worker_poll_interval_seconds
        self.stalled_interval = (
            stalled_interval if stalled_interval is not None else settings.queue_stalled_interval_seconds
        )
        self.worker_id = worker_id or f"{socket.gethostname()}:{uuid.uuid4().hex[:8]}"

        self._executor: Optional[ThreadPoolExecutor] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._slots = threading.Semaphore(self.concurrency)
        self._in_flight: dict[Future, int] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Job handling
    # ------------------------------------------------------------------

    def process(self, job_id: int, payload: NotificationJobPayload, today: Optional[date] = None) -> dict[str, Any]:
        """Deliver one notification. Raises on transport failure after logging the attempt."""
        logger.info(f"Processing notification job {job_id} for reminder {payload.reminder_id}")
        db = self._session_factory()
        try:
            # Reminders deleted or cancelled after the job was queued get no notification
            reminder = db.get(Reminder, payload.reminder_id)
            if reminder is None or reminder.status == "cancelled":
                state = "deleted" if reminder is None else "cancelled"
                logger.info(f"Skipping job {job_id}: reminder {payload.reminder_id} was {state}")
                return {"success": False, "skipped": f"reminder {state}"}

            subject, body = compose_message(payload, today)
            log = notification_log.create_pending(
                db,
                reminder_id=payload.reminder_id,
                client_id=payload.client_id,
                channel=payload.channel,
                recipient=payload.recipient,
                subject=subject,
                message_body=body,
            )
            log_id = log.id

            try:
                if payload.channel == "email":
                    result = self.email_service.send_email(payload.recipient, subject, body)
                elif payload.channel == "whatsapp":
                    result = self.whatsapp_service.send_whatsapp(payload.recipient, body)
                else:
                    raise ValueError(f"Unknown channel: {payload.channel}")
            except Exception as e:
                logger.error(f"Error sending notification for reminder {payload.reminder_id}: {e}")
                notification_log.mark_failed(db, str(e), log_id=log_id)
                raise

            notification_log.mark_sent(db, log_id, result.message_id)
        finally:
            db.close()

        logger.info(f"Successfully sent {payload.channel} notification for reminder {payload.reminder_id}")
        return {"success": True, "log_id": log_id, "message_id": result.message_id}

    def handle(self, job: Job, today: Optional[date] = None) -> JobOutcome:
        """Run a claimed job and report the result to the queue."""
        try:
            payload = NotificationJobPayload.model_validate(job.payload)
            return_value = self.process(job.id, payload, today)
        except Exception as e:
            return self.queue.fail(job.id, e)
        return self.queue.complete(job.id, return_value)

    def process_next(self, today: Optional[date] = None) -> Optional[JobOutcome]:
        """Claim and run a single job. Returns None when there is nothing to do."""
        job = self.queue.claim(self.worker_id)
        if job is None:
            return None
        return self.handle(job, today)

    def drain(self, today: Optional[date] = None, max_jobs: int = 1000) -> list[JobOutcome]:
        """Process runnable jobs in the calling thread until the queue is idle."""
        outcomes = []
        while len(outcomes) < max_jobs:
            outcome = self.process_next(today)
            if outcome is None:
                break
            outcomes.append(outcome)
        return outcomes

    # ------------------------------------------------------------------
    # Background operation
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._dispatcher is not None and self._dispatcher.is_alive():
            logger.info("Notification worker is already running")
            return
        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="notify")
        self._dispatcher = threading.Thread(target=self._run, name="notify-dispatcher", daemon=True)
        self._dispatcher.start()
        logger.info(f"Notification worker {self.worker_id} started (concurrency: {self.concurrency})")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop claiming jobs and give in-flight jobs `timeout` seconds to finish.

        Returns False if jobs were still running when the drain window closed;
        those are picked up again by stall recovery.
        """
        timeout = settings.worker_drain_timeout_seconds if timeout is None else timeout
        self._stop_event.set()
        # A claim in progress must finish before the executor goes away
        if self._dispatcher is not None:
            self._dispatcher.join()

        with self._lock:
            in_flight = list(self._in_flight)
        _, not_done = wait(in_flight, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} notification jobs still running after {timeout}s drain window")

        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None
        self._dispatcher = None
        logger.info(f"Notification worker {self.worker_id} stopped")
        return not not_done

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and self._dispatcher.is_alive()

    def _run(self) -> None:
        executor = self._executor
        last_stall_check = 0.0
        while not self._stop_event.is_set():
            if time.monotonic() - last_stall_check >= self.stalled_interval:
                last_stall_check = time.monotonic()
                try:
                    self.queue.recover_stalled()
                except Exception as e:
                    logger.exception(f"Stalled job check failed: {e}")

            if not self._slots.acquire(timeout=self.poll_interval):
                continue
            if self._stop_event.is_set():
                self._slots.release()
                break

            try:
                job = self.queue.claim(self.worker_id)
            except Exception as e:
                self._slots.release()
                logger.exception(f"Could not claim a job: {e}")
                self._stop_event.wait(self.poll_interval)
                continue

            if job is None:
                self._slots.release()
                self._stop_event.wait(self.poll_interval)
                continue

            if self._stop_event.is_set():
                self._slots.release()
                self._hand_back(job.id, "worker stopped while claiming")
                break

            try:
                future = executor.submit(self.handle, job)
            except RuntimeError as e:
                self._slots.release()
                self._hand_back(job.id, str(e))
                break
            with self._lock:
                self._in_flight[future] = job.id
            future.add_done_callback(self._on_done)

    def _hand_back(self, job_id: int, reason: str) -> None:
        try:
            self.queue.release(job_id)
        except Exception as e:
            logger.exception(f"Could not return job {job_id} to the queue: {e}")
            return
        logger.info(f"Job {job_id} returned to the queue ({reason})")

    def _on_done(self, future: Future) -> None:
        with self._lock:
            job_id = self._in_flight.pop(future, None)
        self._slots.release()
        if future.cancelled():
            if job_id is not None:
                self._hand_back(job_id, "cancelled at shutdown")
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Notification job handler crashed: {exc}")
