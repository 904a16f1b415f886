import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]{10,}$")


def _validate_phone(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if v.startswith("whatsapp:"):
        v = v[len("whatsapp:"):]
    if not PHONE_PATTERN.match(v):
        raise ValueError("Invalid WhatsApp number")
    return v


class ClientCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    whatsapp_number: Optional[str] = None
    company_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    is_active: bool = True

    @field_validator("whatsapp_number")
    @classmethod
    def validate_whatsapp_number(cls, v: str | None) -> str | None:
        return _validate_phone(v)

    @model_validator(mode="after")
    def require_contact(self):
        if not self.email and not self.whatsapp_number:
            raise ValueError("Client needs an email address or a WhatsApp number")
        return self


class ClientUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    whatsapp_number: Optional[str] = None
    company_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("whatsapp_number")
    @classmethod
    def validate_whatsapp_number(cls, v: str | None) -> str | None:
        return _validate_phone(v)

    @field_validator("full_name", "is_active")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ClientResponse(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    whatsapp_number: Optional[str] = None
    company_name: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClientListResponse(BaseModel):
    items: list[ClientResponse]
    total_count: int
    offset: int
    limit: int
