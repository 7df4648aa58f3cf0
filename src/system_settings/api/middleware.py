from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from src.shared import security
from src.shared.exceptions import UnauthorizedError
from src.shared.logging import bind_request_context, clear_request_context, get_logger, set_correlation_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id and the caller's JWT claims to the log context and to
    request.state.user_claims. Authorization itself happens in route dependencies.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = set_correlation_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        claims = None
        token = security.extract_bearer_token(request.headers.get("Authorization"))
        if token:
            try:
                decoded = security.decode_token(token)
                claims = {
                    "sub": decoded.get("sub"),
                    "tenant_id": decoded.get("tenant_id"),
                    "permissions": decoded.get("permissions") or [],
                }
            except UnauthorizedError as e:
                logger.info("jwt_rejected", reason=e.message)
        request.state.user_claims = claims

        bind_request_context(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            user_id=claims.get("sub") if claims else None,
            tenant_id=claims.get("tenant_id") if claims else None,
            client_ip=request.client.host if request.client else None,
        )
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
