"""
Error taxonomy and the FastAPI handlers that turn it into the failure envelope:

    {"success": false, "code": ..., "message": ..., "statusCode": ...,
     "details": {...}?, "correlation_id": ...?}

Services raise DomainError subclasses only; HTTP concerns stay here.
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from src.shared.error_codes import ERROR_CODES, http_status_for, message_for
from src.shared.logging import get_logger

logger = get_logger(__name__)


class DomainError(Exception):
    """A failure with a stable machine code.

    ``code`` and ``status_code`` default per subclass and can be overridden per
    raise (``NotFoundError(code="settings_not_found")``). Without a message the
    catalogue text for the code is used.
    """
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.message = message or message_for(self.code, default=type(self).__name__)
        self.details = details
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(DomainError):
    code, status_code = "validation_error", status.HTTP_422_UNPROCESSABLE_ENTITY


class BadRequestError(DomainError):
    code, status_code = "bad_request", status.HTTP_400_BAD_REQUEST


class UnauthorizedError(DomainError):
    code, status_code = "unauthorized", status.HTTP_401_UNAUTHORIZED


class ForbiddenError(DomainError):
    code, status_code = "forbidden", status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    code, status_code = "not_found", status.HTTP_404_NOT_FOUND


class EntryNotFoundError(NotFoundError):
    code = "entry_not_found"


class AlreadyExistsError(DomainError):
    code, status_code = "already_exists", status.HTTP_409_CONFLICT


class EntryAlreadyExistsError(AlreadyExistsError):
    code = "entry_already_exists"


class ConcurrentModificationError(DomainError):
    """The row's version moved between read and write."""
    code, status_code = "concurrent_modification", status.HTTP_409_CONFLICT


class RateLimitedError(DomainError):
    code, status_code = "rate_limited", status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "", *, retry_after: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        if retry_after is not None:
            self.details = dict(self.details or {}, retry_after=retry_after)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)} if self.retry_after is not None else None


class InternalServerError(DomainError):
    code, status_code = "internal_error", status.HTTP_500_INTERNAL_SERVER_ERROR


class CryptoError(DomainError):
    code, status_code = "crypto_error", status.HTTP_500_INTERNAL_SERVER_ERROR


# ─────────────────────────── Envelope ───────────────────────────

def error_envelope(
    code: str,
    message: str,
    status_code: int,
    details: Optional[Any] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "code": code, "message": message, "statusCode": status_code}
    if details:
        body["details"] = details
    if correlation_id:
        body["correlation_id"] = correlation_id
    return body


def _reply(req: Request, code: str, message: str, status_code: int,
           details: Optional[Any] = None, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    correlation_id = getattr(req.state, "request_id", None)
    body = error_envelope(code, message, status_code, details, correlation_id)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def _code_for_status(status_code: int) -> str:
    # earliest catalogue entry wins for a shared status
    for code, meta in ERROR_CODES.items():
        if meta["http"] == status_code:
            return code
    return "internal_error"


# ─────────────────────────── Registration ───────────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def on_domain_error(req: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error("domain_error", code=exc.code, error=exc.message, path=req.url.path)
        return _reply(req, exc.code, exc.message, exc.status_code, exc.details, exc.headers)

    async def on_invalid_payload(req: Request, exc: Exception):
        return _reply(
            req, "validation_error", message_for("validation_error"), http_status_for("validation_error"),
            {"errors": exc.errors()},
        )

    app.add_exception_handler(RequestValidationError, on_invalid_payload)
    app.add_exception_handler(PydanticValidationError, on_invalid_payload)

    @app.exception_handler(HTTPException)
    async def on_http_exception(req: Request, exc: HTTPException):
        code = _code_for_status(exc.status_code)
        detail = exc.detail
        return _reply(
            req, code,
            detail if isinstance(detail, str) else message_for(code),
            exc.status_code,
            detail if isinstance(detail, dict) else None,
            getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def on_unhandled(req: Request, exc: Exception):
        logger.exception("unhandled_error", path=req.url.path, error_type=type(exc).__name__)
        return _reply(
            req, "internal_error", message_for("internal_error"), http_status_for("internal_error"),
            {"type": type(exc).__name__},
        )
