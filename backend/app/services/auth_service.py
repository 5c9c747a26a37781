"""
Authentication service: JWT bearer tokens
"""
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from app.config import Settings, settings as default_settings
from app.errors import AuthError


def create_token(
    user_id: str,
    tenant_id: str,
    role: str = "user",
    settings: Optional[Settings] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT for a user of a tenant."""
    settings = settings or default_settings
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "role": role,
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else timedelta(days=settings.JWT_EXPIRY_DAYS)),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Decode and validate a JWT. Raises AuthError on failure."""
    settings = settings or default_settings
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    if not claims.get("sub"):
        raise AuthError("Invalid token")
    return claims
