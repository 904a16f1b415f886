import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from app.config import settings
from app.db import SessionLocal
from app.models.client import Client
from app.models.reminder import Reminder
from app.schemas.job import NotificationJobPayload
from app.services.queue import JobQueue
from app.services.schedule import is_due_today, next_reminder_date

logger = logging.getLogger(__name__)

POLL_JOB_ID = "reminder_poll"


def utc_now():
    return datetime.now(timezone.utc)


@dataclass
class PollResult:
    candidates: int = 0
    enqueued: int = 0
    advanced: int = 0
    drift_corrected: int = 0
    skipped: int = 0
    failed: list[int] = field(default_factory=list)


def resolve_channels(reminder: Reminder, client: Client) -> list[tuple[str, str]]:
    """(channel, recipient) pairs the reminder can actually be delivered to."""
    channels = []
    if reminder.notification_channel in ("email", "both"):
        if client.email:
            channels.append(("email", client.email))
        else:
            logger.warning(f"Reminder {reminder.id}: client {client.id} has no email address, email skipped")
    if reminder.notification_channel in ("whatsapp", "both"):
        if client.whatsapp_number:
            channels.append(("whatsapp", client.whatsapp_number))
        else:
            logger.warning(f"Reminder {reminder.id}: client {client.id} has no WhatsApp number, whatsapp skipped")
    return channels


class ReminderPoller:
    """
    Finds reminders that are due, queues their notifications and advances
    their schedules. Runs once at start, then every `interval_seconds`.
    """

    def __init__(
        self,
        queue: JobQueue,
        session_factory: sessionmaker = SessionLocal,
        interval_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.queue = queue
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.poll_interval_seconds
        self._clock = clock
        self._scheduler: Optional[BackgroundScheduler] = None

    def poll_once(self, today: Optional[date] = None) -> PollResult:
        """Run one poll cycle. A failing reminder never aborts the cycle."""
        logger.info("Polling reminders...")
        today = today or self._clock().date()
        result = PollResult()

        db: Session = self._session_factory()
        try:
            rows = (
                db.query(Reminder, Client)
                .join(Client, Reminder.client_id == Client.id)
                .filter(
                    Reminder.status == "active",
                    Client.is_active.is_(True),
                    Reminder.next_reminder_date.isnot(None),
                    Reminder.next_reminder_date <= today,
                )
                .order_by(Reminder.next_reminder_date.asc(), Reminder.id.asc())
                .all()
            )
            result.candidates = len(rows)
            logger.info(f"Found {len(rows)} reminders to process")

            for reminder, client in rows:
                reminder_id = reminder.id
                try:
                    self.process_reminder(db, reminder, client, today, result)
                except Exception as e:
                    db.rollback()
                    result.failed.append(reminder_id)
                    logger.exception(f"Error processing reminder {reminder_id}: {e}")
                    continue
        finally:
            db.close()

        logger.info(
            f"Polling complete: {result.enqueued} jobs queued, {result.advanced} advanced, "
            f"{result.drift_corrected} rescheduled, {len(result.failed)} failed"
        )
        return result

    def process_reminder(
        self,
        db: Session,
        reminder: Reminder,
        client: Client,
        today: date,
        result: Optional[PollResult] = None,
    ) -> int:
        """
        Evaluate one candidate reminder. Returns the number of jobs queued.

        Jobs and the schedule advance are written in a single transaction. The
        advance is conditional on the next_reminder_date we read, so a second
        poller racing on the same reminder loses the claim and queues nothing.
        """
        result = result if result is not None else PollResult()
        now = self._clock()
        schedule = list(reminder.reminder_schedule or [])
        if not schedule:
            raise ValueError(f"Reminder {reminder.id} has an empty schedule")
        claimed_date = reminder.next_reminder_date

        if not is_due_today(reminder.expiry_date, schedule, today):
            logger.info(f"Reminder {reminder.id} not due today, recalculating next date")
            next_date = next_reminder_date(reminder.expiry_date, schedule, today, today)
            if self._advance(db, reminder.id, claimed_date, next_date, now):
                db.commit()
                result.drift_corrected += 1
            else:
                db.rollback()
                result.skipped += 1
            return 0

        channels = resolve_channels(reminder, client)
        if not channels:
            logger.warning(f"No valid channels for reminder {reminder.id} ({reminder.notification_channel})")

        for channel, recipient in channels:
            payload = NotificationJobPayload(
                reminder_id=reminder.id,
                client_id=client.id,
                client_name=client.full_name,
                channel=channel,
                recipient=recipient,
                product_service_name=reminder.product_service_name,
                description=reminder.description,
                expiry_date=reminder.expiry_date,
            )
            self.queue.enqueue(payload, session=db)

        next_date = next_reminder_date(reminder.expiry_date, schedule, today, today)
        if not self._advance(db, reminder.id, claimed_date, next_date, now):
            db.rollback()
            result.skipped += 1
            logger.info(f"Reminder {reminder.id} was claimed by another poller, skipping")
            return 0

        db.commit()
        result.enqueued += len(channels)
        result.advanced += 1
        for channel, _ in channels:
            logger.info(f"Queued {channel} notification for reminder {reminder.id}")
        logger.info(
            f"Updated reminder {reminder.id}: next_date={next_date}, "
            f"status={'completed' if next_date is None else 'active'}"
        )
        return len(channels)

    def _advance(
        self,
        db: Session,
        reminder_id: int,
        claimed_date: Optional[date],
        next_date: Optional[date],
        now: datetime,
    ) -> bool:
        values = {
            Reminder.next_reminder_date: next_date,
            Reminder.last_checked_at: now,
        }
        if next_date is None:
            values[Reminder.status] = "completed"

        updated = (
            db.query(Reminder)
            .filter(
                Reminder.id == reminder_id,
                Reminder.status == "active",
                Reminder.next_reminder_date == claimed_date,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def start(self) -> None:
        """Run a cycle now, then on a fixed interval. Overlapping cycles are not allowed."""
        if self._scheduler is not None and self._scheduler.running:
            logger.info("Reminder poller is already running")
            return

        self._scheduler = BackgroundScheduler(timezone=pytz.UTC)
        self._scheduler.add_job(
            self.poll_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=pytz.UTC),
            id=POLL_JOB_ID,
            name="Reminder Poll",
            next_run_time=datetime.now(pytz.UTC),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Reminder poller started (interval: {self.interval_seconds}s)")

    def stop(self, wait: bool = True) -> None:
        """Stop scheduling new cycles. With `wait`, let a running cycle finish."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Reminder poller stopped")
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
