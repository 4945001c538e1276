from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base class for failures the API reports with a distinguishable kind."""

    status_code = 500
    kind = "error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400
    kind = "validation_error"


class NotFoundError(AppError):
    status_code = 404
    kind = "not_found"


class AuthorizationError(AppError):
    status_code = 403
    kind = "forbidden"


class TransientStoreError(AppError):
    """The transaction could not be committed; state is unchanged and the call may be retried."""

    status_code = 503
    kind = "transient_store_error"
    retryable = True


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
