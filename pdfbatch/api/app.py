"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pdfbatch.api.dependencies import get_settings
from pdfbatch.api.routes import batch_router, download_router
from pdfbatch.api.schemas import ErrorResponse
from pdfbatch.batch.exceptions import (
    BatchError,
    BatchValidationError,
    InvalidTransitionError,
    JobNotFoundError,
    StaleStateError,
)
from pdfbatch.billing.exceptions import InsufficientCreditsError
from pdfbatch.database.connection import close_pool, init_pool
from pdfbatch.download.exceptions import DownloadNotFoundError, InvalidDownloadRequestError
from pdfbatch.logging.logger import Log


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    Log.configure(settings.log_level)
    init_pool(settings)
    Log.info(f"Batch API started (env={settings.app_env})")
    try:
        yield
    finally:
        close_pool()


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


def _status_for(exc: Exception) -> int:
    if isinstance(exc, (JobNotFoundError, DownloadNotFoundError)):
        return 404
    if isinstance(exc, (InvalidTransitionError, StaleStateError)):
        return 409
    if isinstance(exc, (BatchValidationError, InvalidDownloadRequestError)):
        return 400
    if isinstance(exc, InsufficientCreditsError):
        return 402
    return 500


async def _known_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = _status_for(exc)
    code = getattr(exc, "code", "internal")
    if status_code >= 500:
        Log.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error(status_code, code, "Internal server error")
    return _error(status_code, code, str(exc))


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error(400, "validation", str(exc.errors()))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    Log.error(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return _error(500, "internal", "Internal server error")


def create_app(*, manage_pool: bool = True) -> FastAPI:
    """Build the API. Tests pass ``manage_pool=False`` to skip the database pool."""
    app = FastAPI(title="pdfbatch", lifespan=_lifespan if manage_pool else None)
    app.add_exception_handler(BatchError, _known_error_handler)
    app.add_exception_handler(InsufficientCreditsError, _known_error_handler)
    app.add_exception_handler(InvalidDownloadRequestError, _known_error_handler)
    app.add_exception_handler(DownloadNotFoundError, _known_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(batch_router, prefix="/batch", tags=["batch"])
    app.include_router(download_router, prefix="/download", tags=["download"])
    return app
