"""Bearer token verification (tokens are issued by the user service)"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from typing import Optional
import logging

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 30


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str = "user"
    
    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(
    data: dict,
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> Optional[CurrentUser]:
    """Return the user a token belongs to, or None if it is invalid or expired"""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None
    
    user_id = payload.get("id")
    if not user_id:
        logger.warning("Access token carries no user id")
        return None
    
    return CurrentUser(id=str(user_id), role=payload.get("role") or "user")
