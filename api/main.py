"""FastAPI app: video pair uploads, job status and (local backend) downloads."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles

from shared.config import get_settings
from shared.services import close_mq, close_db
from shared.utils import setup_logging, get_logger

from api.uploads.controller.upload_controller import router as uploads_router
from api.exceptions import register_exception_handlers

setup_logging()
logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "API starting up",
        storage_backend=settings.storage_backend,
        queue=settings.job_queue_name,
    )

    yield

    logger.info("API shutting down")
    await close_mq()
    await close_db()


app = FastAPI(
    title="Video Stacker API",
    description=(
        "Combine two uploaded videos into one stacked video. "
        "Job status is completed, processing or failed (terminal, with an error)."
    ),
    version="1.0.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "api"}


app.include_router(uploads_router, tags=["Uploads"])

if settings.storage_backend == "local":
    # local locators point here, mirroring public S3 object URLs
    _storage_dir = Path(settings.local_storage_path)
    _storage_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/files", StaticFiles(directory=_storage_dir), name="files")

register_exception_handlers(app)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
