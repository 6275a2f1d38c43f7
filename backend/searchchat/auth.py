"""Bearer token authentication"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import config
from .db import database
from .db.models import Identity
from .langfuse_config import trace_step
from .utils.structured_logger import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(user_id: str, expires_days: Optional[int] = None, **claims: Any) -> str:
    """Sign a token for user_id; the identity provider issues the same format"""
    payload = dict(claims)
    payload["sub"] = user_id
    payload["exp"] = datetime.now(timezone.utc) + timedelta(days=expires_days or config.JWT_EXPIRE_DAYS)
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        logger.info("Rejected token", error=str(e))
        raise _unauthorized() from e


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """Resolve the caller, or fail with 401 before anything else runs"""
    if credentials is None or not credentials.credentials:
        raise _unauthorized()

    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized()

    with trace_step("admin-check", user_id=user_id) as span:
        is_admin = await database.is_user_admin(user_id)
        if span is not None:
            span.update(output={"is_admin": is_admin})

    return Identity(user_id=user_id, is_admin=is_admin)
