"""
Exception handlers for the application.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from postcomments.exceptions import DatabaseError, ServiceError, to_http_exception
from postcomments.monitoring import get_request_id

logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    request_id = get_request_id() or '-'
    logger.error(
        f"Unhandled exception in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "exception_type": type(exc).__name__,
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred. Please try again or contact support if the issue persists.",
            "path": request.url.path,
            "method": request.method,
            "request_id": request_id
        }
    )


async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """
    Handler for domain and storage errors raised by the service layer.
    """
    request_id = get_request_id() or '-'
    if exc.request_id is None and request_id != '-':
        exc.request_id = request_id

    if isinstance(exc, DatabaseError):
        logger.error(
            f"Storage error in {request.method} {request.url.path}: {exc.message}",
            exc_info=exc.original_error is not None,
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "error_type": type(exc).__name__,
            }
        )
    else:
        logger.info(
            f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}",
            extra={"request_id": request_id, "path": request.url.path, "code": exc.code}
        )

    http_exc = to_http_exception(exc)
    response = JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)
    if request_id != '-':
        response.headers["X-Request-ID"] = request_id
    return response


def setup_exception_handlers(app):
    """
    Register exception handlers with the FastAPI app.
    """
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(ServiceError, service_exception_handler)
