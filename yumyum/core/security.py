import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from yumyum.core.config import get_settings

SESSION_TOKEN_TYPE = "admin_session"


def generate_otp_code() -> str:
    """Generate a random 6-digit passcode."""
    return f"{secrets.randbelow(900_000) + 100_000}"


def create_session_token(owner_id: int, issued_at: Optional[datetime] = None) -> str:
    """Create a signed admin session token with a fixed expiry."""
    settings = get_settings()
    issued_at = issued_at or datetime.utcnow()
    expire = issued_at + timedelta(days=settings.SESSION_EXPIRE_DAYS)

    to_encode = {
        "sub": str(owner_id),
        "iat": issued_at,
        "exp": expire,
        "type": SESSION_TOKEN_TYPE,
    }
    return jwt.encode(to_encode, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM)


def verify_session_token(token: str) -> Dict[str, Any]:
    """Verify the signature and expiry of a session token and return its claims."""
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.SESSION_SECRET, algorithms=[settings.SESSION_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    if payload.get("type") != SESSION_TOKEN_TYPE or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type"
        )

    return payload


def verify_shared_secret(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison of the scheduler's shared secret."""
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
