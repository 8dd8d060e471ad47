from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from api.orchestrator.db.models import JobStatus
from api.orchestrator.models.dto import JobStatusResponse
from api.uploads.persistence.upload_persistence import find_job


async def get_job_status(db: AsyncSession, job_id: str) -> JobStatusResponse:
    """
    completed -> url of the stacked video
    failed    -> last error (job is in the dead-letter queue)
    anything else, unknown ids included -> processing
    """
    try:
        key = UUID(job_id)
    except ValueError:
        return JobStatusResponse(status="processing")

    job = await find_job(db, key)
    if job is None:
        return JobStatusResponse(status="processing")

    if job.status == JobStatus.COMPLETED and job.output_url:
        return JobStatusResponse(status="completed", url=job.output_url)

    if job.status == JobStatus.FAILED:
        return JobStatusResponse(status="failed", error=job.error_message)

    return JobStatusResponse(status="processing")
