from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationLogResponse(BaseModel):
    id: int
    reminder_id: int
    client_id: int
    channel: str
    recipient: str
    subject: Optional[str] = None
    message_body: str
    status: str
    external_message_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    client_name: Optional[str] = None
    product_service_name: Optional[str] = None

    class Config:
        from_attributes = True


class NotificationLogListResponse(BaseModel):
    items: list[NotificationLogResponse]
    total_count: int
    offset: int
    limit: int


class NotificationStats(BaseModel):
    total: int
    sent: int
    failed: int
    pending: int
    email_count: int
    whatsapp_count: int
