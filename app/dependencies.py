from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.auth import decode_access_token
from app.db import get_db
from app.models.operator import Operator
from app.services.queue import JobQueue

# auto_error=False so a missing header is a 401, not FastAPI's default 403
bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Operator:
    """Resolve the bearer token to an active operator."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        operator_id = decode_access_token(credentials.credentials)
    except (JWTError, ValueError):
        raise _unauthorized()

    operator = db.query(Operator).filter(Operator.id == operator_id).first()
    if operator is None or not operator.is_active:
        raise _unauthorized()
    return operator


def get_queue(request: Request) -> JobQueue:
    """The notification queue built at startup."""
    return request.app.state.queue
