import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_current_operator
from app.models.client import Client
from app.models.notification_log import NotificationLog
from app.models.operator import Operator
from app.models.reminder import Reminder
from app.schemas.client import ClientCreate, ClientListResponse, ClientResponse, ClientUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["clients"])


def _get_client_or_404(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    return client


@router.get("", response_model=ClientListResponse)
async def list_clients(
    search: Optional[str] = Query(default=None, description="Match name, email or company"),
    is_active: Optional[bool] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100, description="Page size (max 100)"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """List clients, optionally filtered by search term and active flag."""
    query = db.query(Client)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Client.full_name.ilike(pattern),
                Client.email.ilike(pattern),
                Client.company_name.ilike(pattern),
            )
        )
    if is_active is not None:
        query = query.filter(Client.is_active.is_(is_active))

    total_count = query.count()
    clients = query.order_by(Client.created_at.desc(), Client.id.desc()).offset(offset).limit(limit).all()

    return ClientListResponse(
        items=[ClientResponse.model_validate(c) for c in clients],
        total_count=total_count,
        offset=offset,
        limit=limit,
    )


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    if client_data.email:
        existing = db.query(Client).filter(Client.email == client_data.email).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A client with this email already exists",
            )

    client = Client(**client_data.model_dump(), created_by=operator.id)
    db.add(client)
    db.commit()
    db.refresh(client)
    logger.info(f"Client created: {client.id} by operator {operator.id}")
    return client


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    return _get_client_or_404(db, client_id)


@router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """Update the fields present in the request."""
    client = _get_client_or_404(db, client_id)
    update_data = client_data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    email = update_data.get("email", client.email)
    whatsapp_number = update_data.get("whatsapp_number", client.whatsapp_number)
    if not email and not whatsapp_number:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client needs an email address or a WhatsApp number",
        )

    for field, value in update_data.items():
        setattr(client, field, value)

    db.commit()
    db.refresh(client)
    logger.info(f"Client updated: {client_id} by operator {operator.id}")
    return client


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """Delete a client together with its reminders and notification history."""
    client = _get_client_or_404(db, client_id)
    db.query(NotificationLog).filter(NotificationLog.client_id == client_id).delete(synchronize_session=False)
    db.query(Reminder).filter(Reminder.client_id == client_id).delete(synchronize_session=False)
    db.delete(client)
    db.commit()
    logger.info(f"Client deleted: {client_id} by operator {operator.id}")
    return None
