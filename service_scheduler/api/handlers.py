"""
Exception handlers and request-id middleware for the HTTP layer.

Engine errors already carry their HTTP status and structured detail, so a
single handler renders every ``SchedulingError`` in the same envelope:

    {"success": false, "error": {"code": ..., "message": ..., ...}}
"""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from service_scheduler.errors import SchedulingError
from service_scheduler.logging_context import get_request_logger, request_scope

logger = get_request_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_ID_HEADER = "X-Actor-Id"


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected with %s: %s", request.method, request.url.path, exc.code, exc.message
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.warning("Request validation failed on %s: %s", request.url.path, errors)
    first = errors[0] if errors else {}
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": first.get("msg", "Invalid request"),
                "retryable": False,
                "field": ".".join(str(p) for p in first.get("loc", ())),
                "details": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                    for e in errors
                ],
            },
        },
    )


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Runs every request in its own logging scope and echoes the correlation id."""

    async def dispatch(self, request: Request, call_next):
        with request_scope(
            request.headers.get(REQUEST_ID_HEADER), request.headers.get(ACTOR_ID_HEADER)
        ) as request_id:
            logger.debug("%s %s", request.method, request.url.path)
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
