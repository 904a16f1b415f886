from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import jwt

from app.config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def token_lifetime() -> timedelta:
    return timedelta(minutes=settings.access_token_expire_minutes)


def create_access_token(operator_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token whose subject is the operator id."""
    expire = datetime.now(timezone.utc) + (expires_delta or token_lifetime())
    claims = {"sub": str(operator_id), "exp": expire}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> int:
    """
    Return the operator id carried by a valid token.

    Raises jose.JWTError for a bad signature or an expired token, and
    ValueError when the subject is missing or not an id.
    """
    claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    subject = claims.get("sub")
    if subject is None:
        raise ValueError("Token has no subject")
    return int(subject)
