"""Exception handlers rendering every failure as one error envelope."""

from __future__ import annotations

import logging
from typing import Any

from litestar import Request, Response
from litestar.datastructures import State
from litestar.exceptions import HTTPException, ValidationException
from litestar.types import ExceptionHandlersMap

from relay_server.errors import RelayError

logger = logging.getLogger(__name__)

_CODES_BY_STATUS = {
    400: "validation",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    410: "expired",
}


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> Response[dict[str, Any]]:
    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return Response(content=payload, status_code=status_code)


def relay_error_handler(
    _request: Request[Any, Any, State], exc: RelayError,
) -> Response[dict[str, Any]]:
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc.message, exc_info=exc)
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


def validation_exception_handler(
    _request: Request[Any, Any, State], exc: ValidationException,
) -> Response[dict[str, Any]]:
    # Request decoding and query/path parameter errors raised by Litestar.
    details = {"errors": exc.extra} if exc.extra else None
    return error_response(
        status_code=400,
        code="validation",
        message="Invalid payload",
        details=details,
    )


def http_exception_handler(
    _request: Request[Any, Any, State], exc: HTTPException,
) -> Response[dict[str, Any]]:
    if exc.status_code >= 500:
        return unhandled_exception_handler(_request, exc)
    return error_response(
        status_code=exc.status_code,
        code=_CODES_BY_STATUS.get(exc.status_code, "http_error"),
        message=exc.detail,
    )


def unhandled_exception_handler(
    request: Request[Any, Any, State], exc: Exception,
) -> Response[dict[str, Any]]:
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc,
    )
    return error_response(
        status_code=500, code="internal", message="Internal server error",
    )


EXCEPTION_HANDLERS: ExceptionHandlersMap = {
    RelayError: relay_error_handler,
    ValidationException: validation_exception_handler,
    HTTPException: http_exception_handler,
    Exception: unhandled_exception_handler,
}
