from app.schemas.client import ClientCreate, ClientResponse, ClientUpdate
from app.schemas.job import JobChannel, NotificationJobPayload
from app.schemas.operator import AuthResponse, LoginRequest, OperatorCreate, OperatorResponse
from app.schemas.reminder import (
    NotificationChannel,
    ReminderCreate,
    ReminderResponse,
    ReminderStatus,
    ReminderUpdate,
)

__all__ = [
    "AuthResponse",
    "ClientCreate",
    "ClientResponse",
    "ClientUpdate",
    "JobChannel",
    "LoginRequest",
    "NotificationChannel",
    "NotificationJobPayload",
    "OperatorCreate",
    "OperatorResponse",
    "ReminderCreate",
    "ReminderResponse",
    "ReminderStatus",
    "ReminderUpdate",
]
