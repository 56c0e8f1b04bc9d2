import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status and a stable code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class PersistenceError(AppError):
    """A database transaction failed and was rolled back."""

    status_code = 500
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str = "Could not save changes, nothing was written"):
        super().__init__(message)


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message}
    )


def _describe(error) -> str:
    # drop the "body"/"query"/"path" prefix FastAPI puts on every location
    loc = [str(part) for part in error.get("loc", ())[1:]]
    msg = error.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {msg}" if loc else msg


async def request_validation_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(_describe(e) for e in exc.errors()) or "Invalid request"

    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"error": ValidationError.code, "message": message}
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
