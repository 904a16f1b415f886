import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session, joinedload

from app.models.notification_log import NotificationLog
from app.schemas.notification_log import NotificationStats

logger = logging.getLogger(__name__)

PENDING = "pending"
SENT = "sent"
FAILED = "failed"


def utc_now():
    return datetime.now(timezone.utc)


def create_pending(
    db: Session,
    *,
    reminder_id: int,
    client_id: int,
    channel: str,
    recipient: str,
    subject: Optional[str],
    message_body: str,
) -> NotificationLog:
    """Insert and commit a pending row so the attempt survives a crash mid-send."""
    log = NotificationLog(
        reminder_id=reminder_id,
        client_id=client_id,
        channel=channel,
        recipient=recipient,
        subject=subject,
        message_body=message_body,
        status=PENDING,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def mark_sent(db: Session, log_id: int, external_message_id: Optional[str]) -> bool:
    now = utc_now()
    updated = (
        db.query(NotificationLog)
        .filter(NotificationLog.id == log_id, NotificationLog.status == PENDING)
        .update(
            {
                NotificationLog.status: SENT,
                NotificationLog.external_message_id: external_message_id,
                NotificationLog.sent_at: now,
                NotificationLog.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if not updated:
        logger.warning(f"Notification log {log_id} was not pending; sent status not recorded")
    return bool(updated)


def mark_failed(
    db: Session,
    error_message: str,
    *,
    log_id: Optional[int] = None,
    reminder_id: Optional[int] = None,
    client_id: Optional[int] = None,
    channel: Optional[str] = None,
) -> Optional[int]:
    """
    Move a pending row to failed.

    Targets `log_id` when known, otherwise the most recent pending row for the
    (reminder, client, channel) attempt. Returns the id of the updated row.
    """
    if log_id is None:
        latest = (
            db.query(NotificationLog.id)
            .filter(
                NotificationLog.reminder_id == reminder_id,
                NotificationLog.client_id == client_id,
                NotificationLog.channel == channel,
                NotificationLog.status == PENDING,
            )
            .order_by(NotificationLog.id.desc())
            .first()
        )
        if latest is None:
            return None
        log_id = latest.id

    now = utc_now()
    updated = (
        db.query(NotificationLog)
        .filter(NotificationLog.id == log_id, NotificationLog.status == PENDING)
        .update(
            {
                NotificationLog.status: FAILED,
                NotificationLog.error_message: error_message,
                NotificationLog.failed_at: now,
                NotificationLog.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return log_id if updated else None


def list_logs(
    db: Session,
    *,
    client_id: Optional[int] = None,
    reminder_id: Optional[int] = None,
    status: Optional[str] = None,
    channel: Optional[str] = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[NotificationLog], int]:
    query = db.query(NotificationLog)
    if client_id is not None:
        query = query.filter(NotificationLog.client_id == client_id)
    if reminder_id is not None:
        query = query.filter(NotificationLog.reminder_id == reminder_id)
    if status:
        query = query.filter(NotificationLog.status == status)
    if channel:
        query = query.filter(NotificationLog.channel == channel)

    total_count = query.count()
    logs = (
        query.options(joinedload(NotificationLog.client), joinedload(NotificationLog.reminder))
        .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return logs, total_count


def stats(
    db: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> NotificationStats:
    def count_where(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    query = db.query(
        func.count(NotificationLog.id),
        count_where(NotificationLog.status == SENT),
        count_where(NotificationLog.status == FAILED),
        count_where(NotificationLog.status == PENDING),
        count_where(NotificationLog.channel == "email"),
        count_where(NotificationLog.channel == "whatsapp"),
    )
    if start is not None and end is not None:
        query = query.filter(NotificationLog.created_at.between(start, end))

    total, sent, failed, pending, email_count, whatsapp_count = query.one()
    return NotificationStats(
        total=total,
        sent=sent,
        failed=failed,
        pending=pending,
        email_count=email_count,
        whatsapp_count=whatsapp_count,
    )


def stale_pending(db: Session, older_than_minutes: int, now: Optional[datetime] = None) -> list[NotificationLog]:
    """Pending rows left behind by a crash or shutdown, for reconciliation."""
    cutoff = (now or utc_now()) - timedelta(minutes=older_than_minutes)
    return (
        db.query(NotificationLog)
        .filter(NotificationLog.status == PENDING, NotificationLog.created_at < cutoff)
        .order_by(NotificationLog.created_at.asc())
        .all()
    )
