import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import create_access_token, hash_password, token_lifetime, verify_password
from app.db import get_db
from app.models.operator import Operator
from app.schemas.operator import AuthResponse, LoginRequest, OperatorCreate, OperatorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(operator: Operator) -> AuthResponse:
    return AuthResponse(
        operator=OperatorResponse.model_validate(operator),
        access_token=create_access_token(operator.id),
        expires_in=int(token_lifetime().total_seconds()),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(operator_data: OperatorCreate, db: Session = Depends(get_db)):
    """Create an operator account and return an access token."""
    email = operator_data.email.lower()
    if db.query(Operator).filter(Operator.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    operator = Operator(
        email=email,
        hashed_password=hash_password(operator_data.password),
        full_name=operator_data.full_name,
    )
    db.add(operator)
    db.commit()
    db.refresh(operator)
    logger.info(f"Operator registered: {operator.id}")
    return _auth_response(operator)


@router.post("/login", response_model=AuthResponse)
async def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    operator = db.query(Operator).filter(Operator.email == credentials.email.lower()).first()
    if not operator or not verify_password(credentials.password, operator.hashed_password):
        logger.warning(f"Failed login for {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not operator.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator account is disabled",
        )

    operator.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(operator)
    return _auth_response(operator)
