"""Domain error taxonomy and its mapping onto HTTP responses."""

from enum import Enum
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from hallbookings import settings


class ErrorCode(Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    CONFLICT = "CONFLICT"
    AUTH_ERROR = "AUTH_ERROR"


class DomainError(Exception):
    """Base domain error with code, user-safe message and optional payload."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **payload: Any) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_body(self) -> dict[str, Any]:
        return {"message": self.message, **self.payload}


class ValidationError(DomainError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    code = ErrorCode.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class AccessDeniedError(DomainError):
    code = ErrorCode.ACCESS_DENIED
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DomainError):
    code = ErrorCode.CONFLICT
    status_code = status.HTTP_409_CONFLICT


class AuthError(DomainError):
    code = ErrorCode.AUTH_ERROR
    status_code = status.HTTP_401_UNAUTHORIZED


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    msg = str(err.get("msg", "Invalid request"))
    # pydantic prefixes messages raised from validators
    msg = msg.removeprefix("Value error, ")
    if err.get("type") == "missing":
        field = err.get("loc", ("", ""))[-1]
        return f"Missing required field: {field}"
    return msg


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": _first_validation_message(exc)},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(
        "Unhandled error on {} {}", request.method, request.url.path
    )
    body: dict[str, Any] = {"message": "Internal server error"}
    if settings.ENVIRONMENT == "development":
        body["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)
