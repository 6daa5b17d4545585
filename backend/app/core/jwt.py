"""
JWT session token utilities.

Tokens are issued after a successful directory login and last 7 days
by default.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed session token.

    Args:
        data: Payload (should include: sub, user_id, username, name, role)
        expires_delta: Optional custom lifetime

    Example payload:
        {
            "sub": "somchai.k",
            "user_id": 12,
            "name": "Somchai K.",
            "role": "superUser",
            "iat": 1700000000,
            "exp": 1700604800
        }
    """
    to_encode = data.copy()
    now = datetime.utcnow()

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"iat": now, "exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and validate a session token; None if invalid or expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
