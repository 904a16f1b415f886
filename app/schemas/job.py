from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class JobChannel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class NotificationJobPayload(BaseModel):
    """Everything the worker needs to compose and send one notification."""

    reminder_id: int
    client_id: int
    client_name: str = Field(..., min_length=1)
    channel: JobChannel
    recipient: str = Field(..., min_length=1)
    product_service_name: str = Field(..., min_length=1)
    description: Optional[str] = None
    expiry_date: date

    model_config = {"extra": "forbid", "use_enum_values": True}

    @field_validator("recipient")
    @classmethod
    def validate_recipient(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Recipient cannot be blank")
        return v
