import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import asc, desc
from sqlalchemy.orm import Session, joinedload

from app.db import get_db
from app.dependencies import get_current_operator
from app.models.client import Client
from app.models.notification_log import NotificationLog
from app.models.operator import Operator
from app.models.reminder import Reminder
from app.schemas.reminder import (
    ReminderCreate,
    ReminderListResponse,
    ReminderResponse,
    ReminderStatus,
    ReminderUpdate,
)
from app.services.schedule import next_reminder_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])


def utc_now():
    return datetime.now(timezone.utc)


def _get_reminder_or_404(db: Session, reminder_id: int) -> Reminder:
    reminder = db.query(Reminder).filter(Reminder.id == reminder_id).first()
    if not reminder:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reminder not found",
        )
    return reminder


@router.get("", response_model=ReminderListResponse)
async def list_reminders(
    client_id: Optional[int] = Query(default=None),
    reminder_status: Optional[ReminderStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100, description="Page size (max 100)"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """List reminders ordered by expiry date (soonest first)."""
    query = db.query(Reminder)
    if client_id is not None:
        query = query.filter(Reminder.client_id == client_id)
    if reminder_status is not None:
        query = query.filter(Reminder.status == reminder_status.value)

    total_count = query.count()
    reminders = (
        query.options(joinedload(Reminder.client), joinedload(Reminder.creator))
        .order_by(asc(Reminder.expiry_date), desc(Reminder.created_at))
        .offset(offset)
        .limit(limit)
        .all()
    )

    return ReminderListResponse(
        items=[ReminderResponse.model_validate(r) for r in reminders],
        total_count=total_count,
        offset=offset,
        limit=limit,
    )


@router.post("", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    reminder_data: ReminderCreate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """Create a reminder; its first notification date is computed from the full schedule."""
    client = db.query(Client).filter(Client.id == reminder_data.client_id).first()
    if not client:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )

    next_date = next_reminder_date(reminder_data.expiry_date, reminder_data.reminder_schedule)
    reminder = Reminder(
        client_id=reminder_data.client_id,
        product_service_name=reminder_data.product_service_name,
        description=reminder_data.description,
        expiry_date=reminder_data.expiry_date,
        notification_channel=reminder_data.notification_channel.value,
        reminder_schedule=reminder_data.reminder_schedule,
        next_reminder_date=next_date,
        status="active" if next_date is not None else "completed",
        created_by=operator.id,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    logger.info(f"Reminder created: {reminder.id} by operator {operator.id}")
    return reminder


@router.get("/{reminder_id}", response_model=ReminderResponse)
async def get_reminder(
    reminder_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    return _get_reminder_or_404(db, reminder_id)


@router.put("/{reminder_id}", response_model=ReminderResponse)
@router.patch("/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: int,
    reminder_data: ReminderUpdate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """
    Apply a partial update in one UPDATE statement.

    Changing the expiry date or schedule, or reactivating a reminder,
    recomputes next_reminder_date from the stored last_checked_at.
    """
    reminder = _get_reminder_or_404(db, reminder_id)
    changes = reminder_data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    values = {field: value.value if isinstance(value, Enum) else value for field, value in changes.items()}

    new_status = values.get("status", reminder.status)
    reschedule = "expiry_date" in values or "reminder_schedule" in values or (
        values.get("status") == "active" and reminder.status != "active"
    )

    if values.get("status") == "completed":
        values["next_reminder_date"] = None
    elif reschedule:
        next_date = next_reminder_date(
            values.get("expiry_date", reminder.expiry_date),
            values.get("reminder_schedule", reminder.reminder_schedule),
            reminder.last_checked_at,
        )
        values["next_reminder_date"] = next_date
        if new_status != "cancelled":
            values["status"] = "active" if next_date is not None else "completed"

    values["updated_at"] = utc_now()
    db.query(Reminder).filter(Reminder.id == reminder_id).update(values, synchronize_session=False)
    db.commit()
    db.refresh(reminder)

    logger.info(f"Reminder updated: {reminder_id} by operator {operator.id}")
    return reminder


@router.delete("/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reminder(
    reminder_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    reminder = _get_reminder_or_404(db, reminder_id)
    db.query(NotificationLog).filter(NotificationLog.reminder_id == reminder_id).delete(synchronize_session=False)
    db.delete(reminder)
    db.commit()
    logger.info(f"Reminder deleted: {reminder_id} by operator {operator.id}")
    return None
