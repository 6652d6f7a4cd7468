"""Exception handlers mapping engine errors to HTTP responses with request ids."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from modengine.domain.errors import (
    AlreadyResolved,
    AlreadyReversed,
    ImmutableRecordError,
    ModerationError,
    NotFound,
    RateLimitExceeded,
    StoreUnavailable,
    Unauthorized,
    ValidationError,
)
from modengine.obs.logging import current_request_id

_STATUS_BY_ERROR: tuple[tuple[type[ModerationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (RateLimitExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (AlreadyResolved, status.HTTP_409_CONFLICT),
    (AlreadyReversed, status.HTTP_409_CONFLICT),
    (ImmutableRecordError, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or current_request_id() or "unknown"


def status_for(exc: ModerationError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def error_body(exc: ModerationError) -> dict[str, object]:
    if isinstance(exc, Unauthorized):
        # Never say whether the target exists.
        return {"code": exc.code, "message": exc.message}
    body: dict[str, object] = {"code": exc.code, "message": exc.message}
    if exc.details:
        body["details"] = exc.details
    if exc.retryable:
        body["retryable"] = True
    return body


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ModerationError)
    async def moderation_exc_handler(request: Request, exc: ModerationError):  # type: ignore[override]
        headers = {}
        if isinstance(exc, RateLimitExceeded):
            headers["Retry-After"] = str(exc.retry_after_seconds)
        payload = {"detail": error_body(exc), "request_id": _request_id(request)}
        return JSONResponse(status_code=status_for(exc), content=payload, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": _request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": _request_id(request)}
        return JSONResponse(status_code=422, content=payload)
