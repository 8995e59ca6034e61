"""Error taxonomy and HTTP mapping for the InterviewMate service."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from interviewmate.core.logging import get_logger

logger = get_logger(__name__)

OVERLOADED_MESSAGE = "I'm overwhelmed right now. Try again in a minute."
TOO_MANY_REQUESTS_MESSAGE = "Too many requests. Slow down a bit."
BAD_REQUEST_MESSAGE = "There was a problem with your request."
CONNECTION_MESSAGE = "I'm having trouble connecting to my brain."
UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again later."


class InterviewMateError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(InterviewMateError):
    """Missing or malformed caller input."""

    status_code = 400


class AuthError(InterviewMateError):
    """No authenticated identity on the request."""

    status_code = 401


class NotFoundError(InterviewMateError):
    """Persona or message absent (or not visible to the caller)."""

    status_code = 404


class RateLimitError(InterviewMateError):
    """Sliding-window limit exceeded."""

    status_code = 429

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ConfigurationError(InterviewMateError):
    """A required backend is not configured."""

    status_code = 500


class UpstreamTransientError(InterviewMateError):
    """Generation backend overloaded or temporarily unreachable."""

    status_code = 503


class StoreUnavailableError(InterviewMateError):
    """Transcript store could not be reached."""

    status_code = 503


class UpstreamEnrichmentError(Exception):
    """Embedding or vector search failure. Recovered inside the semantic adapter."""


class PersistenceError(Exception):
    """Post-stream write failure. Retried by the persistence worker."""


def is_transient_upstream(exc: BaseException) -> bool:
    """Overloaded, unreachable or timed-out backend; worth retrying later."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status in (503, 529)
    name = type(exc).__name__
    return "Connection" in name or "Timeout" in name


def friendly_upstream_message(exc: BaseException) -> str:
    """Map a generation backend failure onto user-facing text."""
    if isinstance(exc, InterviewMateError):
        return exc.message

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status in (503, 529):
            return OVERLOADED_MESSAGE
        if status == 429:
            return TOO_MANY_REQUESTS_MESSAGE
        if 400 <= status < 500:
            return BAD_REQUEST_MESSAGE
        return UNEXPECTED_MESSAGE

    # Connection / timeout failures from the SDK carry no status code
    name = type(exc).__name__
    if "Connection" in name or "Timeout" in name:
        return CONNECTION_MESSAGE
    return UNEXPECTED_MESSAGE


def _error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(content={"error": message}, status_code=status_code, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"error": message}`` with its status."""

    @app.exception_handler(InterviewMateError)
    async def _handle_app_error(request: Request, exc: InterviewMateError) -> JSONResponse:
        if exc.status_code == 400:
            logger.info(f"Rejected request to {request.url.path}: {exc.message}")
        elif exc.status_code >= 500:
            logger.error(f"Request to {request.url.path} failed: {exc.message}")

        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            headers = {"Retry-After": str(exc.retry_after)}
        return _error_response(exc.status_code, exc.message, headers)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(f"Invalid payload for {request.url.path}: {exc.errors()}")
        return _error_response(400, "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return _error_response(500, UNEXPECTED_MESSAGE)
