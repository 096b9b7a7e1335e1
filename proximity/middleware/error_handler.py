from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
import logging
import sys
import json
from typing import Dict, Any, Optional

from proximity.exceptions import ProximityError, RateLimitExceededError
from proximity.middleware.request_id import get_request_id

logger = logging.getLogger("proximity.middleware.error_handler")


class ErrorDetail:
    """Standard error body."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str,
        stack_trace: Optional[str] = None,
        details: Optional[Any] = None
    ):
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.stack_trace = stack_trace
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a JSON-serializable dict."""
        error_dict = {
            "status_code": self.status_code,
            "error": self.message,
            "message": self.message,
            "error_type": self.error_type,
            "request_id": get_request_id(),
        }

        if self.stack_trace:
            error_dict["stack_trace"] = self.stack_trace

        if self.details:
            error_dict["details"] = self.details

        return error_dict


def format_stack_trace(stack_trace: str) -> str:
    """Indent a stack trace for the log."""
    lines = stack_trace.split('\n')
    formatted_lines = []
    for line in lines:
        if line.strip():
            formatted_lines.append(f"  │ {line}")

    return "\n".join(formatted_lines)


def _error_id() -> str:
    return get_request_id() or "--------"


async def error_handler_middleware(request: Request, call_next):
    """
    Catch exceptions that escaped every handler and return a JSON
    ErrorDetail with status 500.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        exc_type, exc_value, exc_traceback = sys.exc_info()
        stack_trace = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
        formatted_trace = format_stack_trace(stack_trace)

        error_msg = f"❌ ERR#{_error_id()}: {request.method} {request.url.path} - {exc.__class__.__name__}: {str(exc)}"
        logger.error(f"{error_msg}\n╭─ Stack Trace ─────────────────────────╮\n{formatted_trace}\n╰───────────────────────────────────────╯")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                message=str(exc),
                error_type=exc.__class__.__name__,
                stack_trace=stack_trace,
            ).to_dict()
        )


def setup_error_handlers(app):
    """
    Register exception handlers on the FastAPI application.
    """
    @app.exception_handler(ProximityError)
    async def proximity_exception_handler(request, exc: ProximityError):
        """Domain errors: bad input (400), rate limited (429), strict routing failure (502)."""
        if exc.status_code >= 500:
            logger.error(f"❌ DOM#{_error_id()}: {request.method} {request.url.path} - {exc.status_code} - {exc.message}")
        else:
            logger.warning(f"⚠️ DOM#{_error_id()}: {request.method} {request.url.path} - {exc.status_code} - {exc.message}")

        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": "60"}

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                status_code=exc.status_code,
                message=exc.message,
                error_type=exc.__class__.__name__,
                details=exc.details,
            ).to_dict(),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        """Handler for HTTP exceptions."""
        if exc.status_code >= 500:
            logger.error(f"❌ HTTP#{_error_id()}: {request.method} {request.url.path} - {exc.status_code} - {exc.detail}")
        else:
            logger.warning(f"⚠️ HTTP#{_error_id()}: {exc.status_code} - {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                status_code=exc.status_code,
                message=str(exc.detail),
                error_type="http_exception",
            ).to_dict(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        """Handler for request validation errors."""
        validation_errors = exc.errors()
        try:
            error_details_str = json.dumps(validation_errors, indent=2, default=str)
        except (TypeError, ValueError):
            error_details_str = str(validation_errors)

        logger.warning(
            f"⚠️ VALID#{_error_id()}: {request.method} {request.url.path}\n"
            f"╭─ Validation Errors ──────────────────╮\n  │ {error_details_str}\n╰───────────────────────────────────────╯"
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorDetail(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                message="Request validation failed",
                error_type="validation_error",
                details=json.loads(json.dumps(validation_errors, default=str)),
            ).to_dict()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request, exc):
        """Handler for unhandled exceptions."""
        exc_type, exc_value, exc_traceback = sys.exc_info()
        stack_trace = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
        formatted_trace = format_stack_trace(stack_trace)

        error_msg = f"❌ EXC#{_error_id()}: {request.method} {request.url.path} - {exc.__class__.__name__}: {str(exc)}"
        logger.error(f"{error_msg}\n╭─ Stack Trace ─────────────────────────╮\n{formatted_trace}\n╰───────────────────────────────────────╯")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                message=str(exc),
                error_type=exc.__class__.__name__,
                stack_trace=stack_trace,
            ).to_dict()
        )
