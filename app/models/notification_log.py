from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db import Base


def utc_now():
    return datetime.now(timezone.utc)


class NotificationLog(Base):
    """One delivery attempt. Retries get their own row."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        Index("ix_notification_logs_attempt", "reminder_id", "client_id", "channel", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reminder_id = Column(Integer, ForeignKey("reminders.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    channel = Column(String(20), nullable=False)  # "email" or "whatsapp"
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)
    message_body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)  # "pending", "sent", "failed"
    external_message_id = Column(String(100), nullable=True)  # Resend id / Twilio SID
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
    sent_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    reminder = relationship("Reminder")
    client = relationship("Client")

    @property
    def client_name(self):
        return self.client.full_name if self.client else None

    @property
    def product_service_name(self):
        return self.reminder.product_service_name if self.reminder else None
