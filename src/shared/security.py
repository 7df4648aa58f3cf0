# src/shared/security.py

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional, Union
from uuid import UUID

import jwt

from src.shared.config import get_settings
from src.shared.exceptions import UnauthorizedError


def create_access_token(
    sub: Union[str, UUID],
    tenant_id: Optional[Union[str, UUID]],
    permissions: Iterable[str] = (),
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token carrying the caller's tenant and permissions.

    Tokens are normally minted by the identity service; this helper exists for
    local tooling and tests.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: Dict[str, Any] = {
        "sub": str(sub),
        "tenant_id": str(tenant_id) if tenant_id else None,
        "permissions": list(permissions),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
        "typ": "access",
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify a JWT token.

    Raises:
        UnauthorizedError: If token is invalid, expired, or malformed
    """
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM], options={"verify_exp": True})
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError(f"Invalid token: {e}")


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None
