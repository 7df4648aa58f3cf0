from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import Depends, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from src.shared.exceptions import ForbiddenError, UnauthorizedError
from src.system_settings.application.context import ActorContext
from src.system_settings.container import SettingsContainer


def get_container(request: Request) -> SettingsContainer:
    return request.app.state.container


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_actor(request: Request) -> ActorContext:
    """Caller identity from the verified JWT claims set by RequestContextMiddleware."""
    claims = getattr(request.state, "user_claims", None)
    if not claims or not claims.get("sub"):
        raise UnauthorizedError()
    return ActorContext(
        actor_id=str(claims["sub"]),
        tenant_id=claims.get("tenant_id") or None,
        ip_address=client_ip(request),
        permissions=frozenset(claims.get("permissions") or ()),
    )


def require_permission(permission: str) -> Callable[..., ActorContext]:
    """
    FastAPI dependency generator enforcing one permission string.

    Usage:
        actor: ActorContext = Depends(require_permission("settings:write"))
    """
    def _enforce(actor: ActorContext = Depends(get_actor)) -> ActorContext:
        if permission not in actor.permissions:
            raise ForbiddenError(details={"required": permission})
        return actor

    return _enforce


def respond(data: Any = None, message: str = "OK", status_code: int = status.HTTP_200_OK) -> JSONResponse:
    """Success envelope: {success, data, message, statusCode}."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "data": jsonable_encoder(data),
            "message": message,
            "statusCode": status_code,
        },
    )
