from __future__ import annotations

import asyncio
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from api.orchestrator.media.combiner import get_combiner
from api.orchestrator.models.dto import AudioOption, JobQueueMessage, LayoutOption
from api.orchestrator.storage.blob_store import BlobStore, get_blob_store, new_input_key, new_output_key
from api.uploads.persistence.upload_persistence import create_job, mark_job_failed
from api.uploads.upload_messages import (
    INVALID_AUDIO_OPTION_MESSAGE,
    MISSING_FILES_MESSAGE,
    NOT_A_VIDEO_MESSAGE,
)
from shared.config import get_settings
from shared.services import get_mq
from shared.utils import get_logger

logger = get_logger(__name__)


class UploadValidationError(Exception):
    """Rejected before any side effect; maps to HTTP 400."""


class EnqueueError(Exception):
    """Inputs were stored but the job could not be queued."""


@dataclass(frozen=True)
class UploadedVideo:
    filename: str
    content_type: Optional[str]
    file: BinaryIO

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.filename).suffix.lower() or ".mp4"


@dataclass(frozen=True)
class Submission:
    video1: UploadedVideo
    video2: UploadedVideo
    audio: AudioOption
    layout: LayoutOption


def validate_submission(
    video1: Optional[UploadedVideo],
    video2: Optional[UploadedVideo],
    audio_option: Optional[str],
    layout_option: Optional[str],
) -> Submission:
    if video1 is None or video2 is None or not video1.filename or not video2.filename:
        raise UploadValidationError(MISSING_FILES_MESSAGE)

    for video in (video1, video2):
        if not (video.content_type or "").startswith("video/"):
            raise UploadValidationError(NOT_A_VIDEO_MESSAGE)

    audio = AudioOption.parse(audio_option)
    if audio is None:
        raise UploadValidationError(INVALID_AUDIO_OPTION_MESSAGE)

    return Submission(
        video1=video1,
        video2=video2,
        audio=audio,
        layout=LayoutOption.parse(layout_option),
    )


async def store_inputs(store: BlobStore, submission: Submission) -> tuple[str, str]:
    """Put both uploads concurrently; either failure aborts with StorageError."""
    video1, video2 = submission.video1, submission.video2
    url1, url2 = await asyncio.gather(
        store.put_fileobj(video1.file, new_input_key("video1", video1.suffix), video1.content_type),
        store.put_fileobj(video2.file, new_input_key("video2", video2.suffix), video2.content_type),
    )
    return url1, url2


async def submit_job(*, db: AsyncSession, submission: Submission) -> UUID:
    """
    Async variant:
    - store both inputs (nothing is recorded or queued if this fails)
    - create job row (queued) + commit so the worker and /status can see it
    - publish the job descriptor
    Returns without waiting for processing.
    """
    store = get_blob_store()
    video1_url, video2_url = await store_inputs(store, submission)

    job_id = uuid4()
    await create_job(
        db,
        job_id=job_id,
        video1_url=video1_url,
        video2_url=video2_url,
        audio_option=submission.audio,
        layout_option=submission.layout,
    )
    await db.commit()

    message = JobQueueMessage(
        job_id=job_id,
        video1_path=video1_url,
        video2_path=video2_url,
        audio_option=submission.audio,
        layout_option=submission.layout,
    )

    try:
        mq = await get_mq()
        await mq.publish_job(message)
    except Exception as e:
        logger.error("Failed to publish job", job_id=str(job_id), error=str(e))

        # mark failed so /status does not report it as processing forever
        await mark_job_failed(db, job_id, error_message=f"Failed to enqueue job: {e}")
        await db.commit()
        raise EnqueueError(f"Failed to enqueue job: {e}") from e

    logger.info("Job submitted", job_id=str(job_id), audio=submission.audio.value, layout=submission.layout.value)
    return job_id


def _save_upload(video: UploadedVideo, dest: Path) -> Path:
    video.file.seek(0)
    with open(dest, "wb") as out:
        shutil.copyfileobj(video.file, out)
    return dest


async def process_sync(submission: Submission) -> str:
    """
    Sync/hybrid variant: store inputs, encode in-request, store the output.
    Returns the output locator. StorageError / ProcessingError propagate.
    """
    settings = get_settings()
    store = get_blob_store()
    combiner = get_combiner()
    run_id = uuid4()

    with tempfile.TemporaryDirectory(
        prefix=f"sync-{run_id}-", dir=settings.work_dir, ignore_cleanup_errors=True
    ) as tmp:
        work = Path(tmp)
        video1, video2 = await asyncio.gather(
            asyncio.to_thread(_save_upload, submission.video1, work / f"input1{submission.video1.suffix}"),
            asyncio.to_thread(_save_upload, submission.video2, work / f"input2{submission.video2.suffix}"),
        )

        await asyncio.gather(
            store.put_file(video1, new_input_key("video1", submission.video1.suffix)),
            store.put_file(video2, new_input_key("video2", submission.video2.suffix)),
        )

        output = await combiner.combine(
            video1,
            video2,
            work / f"{run_id}-merged.mp4",
            submission.layout,
            submission.audio,
        )
        output_url = await store.put_file(output, new_output_key(run_id))

    logger.info("Sync job processed", run_id=str(run_id), url=output_url)
    return output_url
