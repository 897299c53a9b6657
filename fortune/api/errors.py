from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fortune.exceptions import ResourceConflictError, ResourceValidationError, TransformRejected
from fortune.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass
class APIError(Exception):
    status_code: int
    code: str
    message: str
    details: dict[str, Any] | None = None


_CODES = {400: "invalid_argument", 401: "unauthenticated", 403: "forbidden", 404: "not_found", 409: "conflict"}


def error_response(*, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return JSONResponse(status_code=int(status_code), content=payload)


async def api_error_handler(_req: Request, exc: APIError) -> JSONResponse:
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def validation_error_handler(_req: Request, exc: RequestValidationError) -> JSONResponse:
    # Normalize request validation errors into the error envelope.
    return error_response(
        status_code=400,
        code="invalid_argument",
        message="Request validation failed.",
        details={"errors": exc.errors()},
    )


async def resource_validation_error_handler(_req: Request, exc: ResourceValidationError) -> JSONResponse:
    return error_response(
        status_code=400,
        code="invalid_argument",
        message=str(exc),
        details={"errors": exc.errors} if exc.errors else None,
    )


async def conflict_error_handler(_req: Request, exc: ResourceConflictError) -> JSONResponse:
    return error_response(status_code=409, code="conflict", message=str(exc))


async def transform_rejected_handler(_req: Request, exc: TransformRejected) -> JSONResponse:
    return error_response(
        status_code=exc.status_code,
        code=_CODES.get(exc.status_code, "rejected"),
        message=exc.message,
    )


async def unhandled_error_handler(req: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", req.method, req.url.path, exc_info=exc)
    response = error_response(
        status_code=500,
        code="internal",
        message="Internal server error.",
        details={"type": type(exc).__name__},
    )
    policy = getattr(req.app.state, "cors", None)
    headers = policy.headers_for(req) if policy is not None else None
    if headers:
        response.headers.update(headers)
    return response
