from __future__ import annotations

import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, ClassVar

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class WorkflowError(Exception):
    """Base class for failures raised by the loan workflow services.

    Each subclass pins the HTTP status the API layer answers with; ``code`` is
    the stable machine-readable identifier the UI switches on.
    """

    message: str
    code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    status_code: ClassVar[int] = 400
    default_code: ClassVar[str] = "workflow_error"

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if not self.code:
            self.code = self.default_code

    def __str__(self) -> str:
        return self.message


class NotFoundError(WorkflowError):
    status_code = 404
    default_code = "not_found"


class WorkflowValidationError(WorkflowError):
    status_code = 400
    default_code = "validation_error"


class InvalidStageError(WorkflowError):
    # Unreachable while the bootstrap invariant holds; a stored stage we do
    # not recognise means the data or deployment is misconfigured.
    status_code = 500
    default_code = "invalid_stage"


class ForbiddenError(WorkflowError):
    status_code = 403
    default_code = "forbidden"


class ConflictError(WorkflowError):
    status_code = 409
    default_code = "conflict"


class StageOutOfOrderError(ConflictError):
    default_code = "stage_not_current"


class WorkflowPersistenceError(WorkflowError):
    status_code = 500
    default_code = "persistence_failed"


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "unprocessable_entity",
        429: "rate_limited",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"errors": details}
    return {"detail": str(details)}


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "error": message,
        "data": None,
        "details": _normalize_details(details),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def _parse_http_exception_detail(detail: Any, status_code: int) -> tuple[str, str, dict]:
    code = _default_code(status_code)
    message = _default_message(status_code)

    if isinstance(detail, dict):
        code = detail.get("code") or code
        message = detail.get("message") or detail.get("detail") or detail.get("error") or message
        if "details" in detail:
            return code, message, _normalize_details(detail.get("details"))
        remainder = {
            k: v for k, v in detail.items() if k not in {"code", "message", "detail", "error"}
        }
        return code, message, remainder or {"detail": message}

    if isinstance(detail, list):
        return code, message, {"errors": detail}

    if isinstance(detail, str):
        return code, detail, {"detail": detail}

    return code, message, {"detail": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _parse_http_exception_detail(exc.detail, exc.status_code)
    response = _build_response(exc.status_code, code, message, details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Validation failed"
    if errors:
        first = errors[0] or {}
        loc = first.get("loc") or []
        msg = first.get("msg") or "Validation failed"
        # Drop the request section (body/query/path) from the location
        loc_parts = [str(part) for part in loc if part not in {"body", "query", "path"}]
        message = f"{'.'.join(loc_parts)}: {msg}" if loc_parts else str(msg)
    return _build_response(
        status_code=422,
        code="validation_error",
        message=message,
        details={"errors": errors},
    )


async def workflow_exception_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Workflow failure code=%s: %s", exc.code, exc.message, extra={"details": exc.details})
    else:
        logger.info("Workflow request refused code=%s: %s", exc.code, exc.message)
    return _build_response(exc.status_code, exc.code, exc.message, exc.details)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _build_response(
        status_code=429,
        code="rate_limited",
        message=_default_message(429),
        details=getattr(exc, "detail", None),
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
        details={},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(WorkflowError, workflow_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
