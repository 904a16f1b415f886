from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.db import Base


def utc_now():
    return datetime.now(timezone.utc)


class Operator(Base):
    """Staff account that manages clients, reminders and the notification queue."""

    __tablename__ = "operators"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)  # disabled operators cannot log in
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now)
