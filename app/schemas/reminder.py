from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class NotificationChannel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    BOTH = "both"


class ReminderStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _validate_schedule(v: list[int]) -> list[int]:
    if not v:
        raise ValueError("Reminder schedule must be a non-empty list of days before expiry")
    if any(day < 0 for day in v):
        raise ValueError("Reminder schedule days must be non-negative")
    return v


class ReminderCreate(BaseModel):
    client_id: int
    product_service_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    expiry_date: date
    notification_channel: NotificationChannel
    reminder_schedule: list[int] = Field(..., min_length=1)

    @field_validator("reminder_schedule")
    @classmethod
    def validate_schedule(cls, v: list[int]) -> list[int]:
        return _validate_schedule(v)


class ReminderUpdate(BaseModel):
    """Partial update. Only fields present in the request are applied."""

    product_service_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    expiry_date: Optional[date] = None
    notification_channel: Optional[NotificationChannel] = None
    reminder_schedule: Optional[list[int]] = None
    status: Optional[ReminderStatus] = None

    @field_validator("reminder_schedule")
    @classmethod
    def validate_schedule(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            raise ValueError("Reminder schedule cannot be null")
        return _validate_schedule(v)

    @field_validator("product_service_name", "expiry_date", "notification_channel", "status")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ReminderResponse(BaseModel):
    id: int
    client_id: int
    product_service_name: str
    description: Optional[str] = None
    expiry_date: date
    notification_channel: str
    reminder_schedule: list[int]
    next_reminder_date: Optional[date] = None
    status: str
    last_checked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_whatsapp: Optional[str] = None
    created_by_name: Optional[str] = None

    class Config:
        from_attributes = True


class ReminderListResponse(BaseModel):
    items: list[ReminderResponse]
    total_count: int
    offset: int
    limit: int
