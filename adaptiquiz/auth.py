from datetime import datetime, timedelta
from typing import Optional
import structlog

from fastapi import Header
from jose import jwt, JWTError

from adaptiquiz import config

logger = structlog.get_logger()

ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 8


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": subject, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[str]:
    """Return the user id carried by an access token, or None when it is invalid or expired"""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])

        if payload.get("type") != "access":
            logger.warning("invalid_token_type", expected="access", actual=payload.get("type"))
            return None

        return payload.get("sub")

    except JWTError as e:
        logger.warning("token_verification_failed", error=str(e))
        return None


def get_caller_identity(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return decode_token(token.strip())


def caller_identity(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """FastAPI dependency: signed-in user id, or None for anonymous callers"""
    return get_caller_identity(authorization)
