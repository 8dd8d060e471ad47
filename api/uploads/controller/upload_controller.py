from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from api.orchestrator.models.dto import RejectedUploadResponse, JobStatusResponse, SyncUploadResponse, UploadResponse
from api.uploads.service.status_service import get_job_status
from api.uploads.service.upload_service import (
    Submission,
    UploadedVideo,
    UploadValidationError,
    process_sync,
    submit_job,
    validate_submission,
)
from api.uploads.upload_messages import JOB_QUEUED_MESSAGE, SYNC_DONE_MESSAGE
from shared.services import get_session
from shared.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

_ERROR_RESPONSES = {
    400: {"model": RejectedUploadResponse, "description": "Validation failure, `{\"detail\": message}`"},
    500: {"description": "Storage, queue or ffmpeg failure (plain text)"},
}


def _as_video(upload: Optional[UploadFile]) -> Optional[UploadedVideo]:
    if upload is None:
        return None
    return UploadedVideo(filename=upload.filename or "", content_type=upload.content_type, file=upload.file)


def _validated(
    video1: Optional[UploadFile],
    video2: Optional[UploadFile],
    audio_option: Optional[str],
    layout_option: Optional[str],
) -> Submission:
    # controller concern: turn validation failures into 400s before any side effect
    try:
        return validate_submission(_as_video(video1), _as_video(video2), audio_option, layout_option)
    except UploadValidationError as e:
        logger.info("Upload rejected", reason=str(e))
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/upload", response_model=UploadResponse, responses=_ERROR_RESPONSES)
async def upload_videos(
    video1: Optional[UploadFile] = File(None),
    video2: Optional[UploadFile] = File(None),
    audio_option: Optional[str] = Form(None, alias="audioOption"),
    layout_option: Optional[str] = Form(None, alias="layoutOption"),
    db: AsyncSession = Depends(get_session),
) -> UploadResponse:
    submission = _validated(video1, video2, audio_option, layout_option)
    job_id = await submit_job(db=db, submission=submission)
    return UploadResponse(message=JOB_QUEUED_MESSAGE, job_id=job_id)


@router.post("/upload/sync", response_model=SyncUploadResponse, responses=_ERROR_RESPONSES)
async def upload_videos_sync(
    video1: Optional[UploadFile] = File(None),
    video2: Optional[UploadFile] = File(None),
    audio_option: Optional[str] = Form(None, alias="audioOption"),
    layout_option: Optional[str] = Form(None, alias="layoutOption"),
) -> SyncUploadResponse:
    submission = _validated(video1, video2, audio_option, layout_option)
    output_url = await process_sync(submission)
    return SyncUploadResponse(message=SYNC_DONE_MESSAGE, output=output_url)


_STATUS_DESCRIPTION = (
    "Returns `{\"status\": \"completed\", \"url\"}` once the stacked video is stored, "
    "`{\"status\": \"failed\", \"error\"}` when retries are exhausted or the job could not be queued, "
    "and `{\"status\": \"processing\"}` otherwise (unknown ids included). "
    "Clients that only know completed/processing should treat failed as terminal."
)


@router.get(
    "/status/{job_id}",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
    description=_STATUS_DESCRIPTION,
)
async def job_status(job_id: str, db: AsyncSession = Depends(get_session)) -> JobStatusResponse:
    return await get_job_status(db, job_id)
