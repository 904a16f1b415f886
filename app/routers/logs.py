from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_current_operator
from app.models.operator import Operator
from app.schemas.job import JobChannel
from app.schemas.notification_log import (
    NotificationLogListResponse,
    NotificationLogResponse,
    NotificationStats,
)
from app.services import notification_log

router = APIRouter(prefix="/logs", tags=["logs"])


def _page(logs, total_count: int, offset: int, limit: int) -> NotificationLogListResponse:
    return NotificationLogListResponse(
        items=[NotificationLogResponse.model_validate(log) for log in logs],
        total_count=total_count,
        offset=offset,
        limit=limit,
    )


@router.get("", response_model=NotificationLogListResponse)
async def list_logs(
    client_id: Optional[int] = Query(default=None),
    reminder_id: Optional[int] = Query(default=None),
    log_status: Optional[str] = Query(default=None, alias="status", pattern="^(pending|sent|failed)$"),
    channel: Optional[JobChannel] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100, description="Page size (max 100)"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """Notification delivery history, newest first."""
    logs, total_count = notification_log.list_logs(
        db,
        client_id=client_id,
        reminder_id=reminder_id,
        status=log_status,
        channel=channel.value if channel else None,
        offset=offset,
        limit=limit,
    )
    return _page(logs, total_count, offset, limit)


@router.get("/stats", response_model=NotificationStats)
async def get_stats(
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """Counts by status and channel, optionally limited to a date range."""
    if (start_date is None) != (end_date is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date and end_date must be provided together",
        )
    return notification_log.stats(db, start_date, end_date)


@router.get("/reminder/{reminder_id}", response_model=NotificationLogListResponse)
async def get_logs_by_reminder(
    reminder_id: int,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    logs, total_count = notification_log.list_logs(db, reminder_id=reminder_id, offset=offset, limit=limit)
    return _page(logs, total_count, offset, limit)


@router.get("/client/{client_id}", response_model=NotificationLogListResponse)
async def get_logs_by_client(
    client_id: int,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    logs, total_count = notification_log.list_logs(db, client_id=client_id, offset=offset, limit=limit)
    return _page(logs, total_count, offset, limit)
