"""Global exception handling: middleware for crashes, handlers for known errors."""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.exceptions import MintoonsException, RateLimitError
from app.utils.logger import get_logger

logger = get_logger(__name__)


def error_response(
    status_code: int,
    message: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Create JSON error response.

    Args:
        status_code: HTTP status code.
        message: Error message.
        error_code: Error code identifier.
        details: Additional error details.
        headers: Extra response headers.

    Returns:
        JSON response.
    """
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            "error": {
                "code": error_code,
                "details": details or {},
            },
        },
        headers=headers,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches anything the route layer did not handle and returns a 500 body."""

    async def dispatch(self, request: Request, call_next: Any) -> JSONResponse:
        """
        Handle exceptions and return proper JSON responses.

        Args:
            request: HTTP request.
            call_next: Next middleware/route handler.

        Returns:
            JSON response with error details.
        """
        if request.method == "OPTIONS":
            return await call_next(request)

        try:
            return await call_next(request)
        except MintoonsException as e:
            return _mintoons_response(e)
        except Exception as e:
            logger.error(
                f"Unhandled exception on {request.method} {request.url.path}: {str(e)}",
                extra={"extra_data": {"exception_type": type(e).__name__}},
                exc_info=True,
            )
            return error_response(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                message="An unexpected error occurred",
                error_code="INTERNAL_SERVER_ERROR",
                details={"error": str(e)} if logger.isEnabledFor(10) else {},
            )


def _mintoons_response(exc: MintoonsException) -> JSONResponse:
    logger.warning(
        f"Mintoons exception: {exc.error_code} - {exc.message}",
        extra={"extra_data": {"error_code": exc.error_code, "details": exc.details}},
    )
    headers = None
    if isinstance(exc, RateLimitError):
        headers = exc.headers
    return error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
        headers=headers,
    )


async def mintoons_exception_handler(request: Request, exc: MintoonsException) -> JSONResponse:
    return _mintoons_response(exc)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException with the shared error body."""
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    details = detail if isinstance(detail, dict) else {}
    return error_response(
        status_code=exc.status_code,
        message=message,
        error_code=f"HTTP_{exc.status_code}",
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render pydantic request validation failures with the shared error body."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return error_response(
        status_code=422,
        message=message,
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers to the application."""
    app.add_exception_handler(MintoonsException, mintoons_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
