"""
Exception handlers for the API.

Storage, queue and ffmpeg failures return the raw error text as a plain
500 body; anything else gets a generic JSON 500.
"""

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse, PlainTextResponse

from api.orchestrator.media.combiner import ProcessingError
from api.orchestrator.storage.blob_store import StorageError
from api.uploads.service.upload_service import EnqueueError
from shared.utils import get_logger

logger = get_logger(__name__)


async def pipeline_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Request failed",
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return PlainTextResponse(str(exc), status_code=500)


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - logs and returns generic error."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return ORJSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the app."""
    for exc_type in (StorageError, ProcessingError, EnqueueError):
        app.add_exception_handler(exc_type, pipeline_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
