"""
Error taxonomy and the JSON error envelope.

Every error leaves the API as {"error": <kind>, "message": <human text>}.
"""
import logging
from typing import Optional, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    """Base class for errors rendered with the standard envelope."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)
        if error:
            self.error = error

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationError(AppError):
    status_code = 400
    error = "Validation Error"


class AuthError(AppError):
    status_code = 401
    error = "Access denied"

    def __init__(self, message: str = "Authentication required", error: Optional[str] = None):
        super().__init__(message, error=error, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    error = "Not Found"


class ConflictError(AppError):
    status_code = 409
    error = "Conflict"


class InternalError(AppError):
    status_code = 500
    error = "Internal Server Error"


class UpstreamError(Exception):
    """The LLM provider failed or returned something unusable.

    Raised inside the LLM layer only; the extraction service always absorbs
    it and substitutes its documented defaults.
    """


_STATUS_KINDS = {
    400: "Validation Error",
    401: "Access denied",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    429: "Too many requests",
}


def error_response(status_code: int, error: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI, hide_internal_details: bool) -> None:
    """Attach the envelope-producing handlers to the app."""

    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"❌ {exc.error} on {request.url.path}: {exc.message}")
            message = "Something went wrong" if hide_internal_details else exc.message
        else:
            logger.warning(f"⚠️ {exc.status_code} {exc.error} on {request.url.path}: {exc.message}")
            message = exc.message
        return error_response(exc.status_code, exc.error, message, exc.headers)

    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", []) if part != "body")
            details.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
        return error_response(400, "Validation Error", ", ".join(details) or "Invalid request")

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        kind = _STATUS_KINDS.get(exc.status_code, "Error")
        return error_response(exc.status_code, kind, str(exc.detail), getattr(exc, "headers", None))

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"❌ Unhandled error on {request.url.path}: {exc}")
        message = "Something went wrong" if hide_internal_details else str(exc)
        return error_response(500, "Internal Server Error", message)

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
