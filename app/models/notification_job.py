from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String, Text

from app.db import Base


def utc_now():
    return datetime.now(timezone.utc)


class NotificationJob(Base):
    """Durable queue entry. A job is delayed while run_at is in the future."""

    __tablename__ = "notification_jobs"
    __table_args__ = (
        Index("ix_notification_jobs_claim", "queue", "status", "run_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    queue = Column(String(50), nullable=False, default="notifications")
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="waiting")  # "waiting", "active", "completed", "failed"
    attempts_made = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    backoff_delay = Column(Float, nullable=False, default=2.0)  # seconds, doubled per attempt
    stalled_count = Column(Integer, nullable=False, default=0)
    failed_reason = Column(Text, nullable=True)
    return_value = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    run_at = Column(DateTime, nullable=False, default=utc_now)
    processed_on = Column(DateTime, nullable=True)
    finished_on = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    locked_by = Column(String(100), nullable=True)


class QueueState(Base):
    __tablename__ = "queue_state"

    queue = Column(String(50), primary_key=True)
    is_paused = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
