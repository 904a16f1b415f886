from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db import Base


def utc_now():
    return datetime.now(timezone.utc)


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    product_service_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    expiry_date = Column(Date, nullable=False)
    notification_channel = Column(String(20), nullable=False)  # "email", "whatsapp" or "both"
    reminder_schedule = Column(JSON, nullable=False)  # days before expiry, e.g. [30, 7, 1]
    next_reminder_date = Column(Date, nullable=True, index=True)  # NULL = schedule exhausted
    status = Column(String(20), nullable=False, default="active", index=True)
    last_checked_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("operators.id"), nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    client = relationship("Client")
    creator = relationship("Operator")

    # Display fields for listings
    @property
    def client_name(self):
        return self.client.full_name if self.client else None

    @property
    def client_email(self):
        return self.client.email if self.client else None

    @property
    def client_whatsapp(self):
        return self.client.whatsapp_number if self.client else None

    @property
    def created_by_name(self):
        return self.creator.full_name if self.creator else None
