from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from api.orchestrator.db.models import Job, JobStatus
from api.orchestrator.models.dto import AudioOption, LayoutOption


async def create_job(
    db: AsyncSession,
    *,
    job_id: UUID,
    video1_url: str,
    video2_url: str,
    audio_option: AudioOption,
    layout_option: LayoutOption,
) -> UUID:
    job = Job(
        id=job_id,
        status=JobStatus.QUEUED,
        video1_url=video1_url,
        video2_url=video2_url,
        audio_option=audio_option.value,
        layout_option=layout_option.value,
    )
    db.add(job)
    await db.flush()
    return job.id


async def find_job(db: AsyncSession, job_id: UUID) -> Optional[Job]:
    result = await db.execute(select(Job).where(Job.id == job_id))
    return result.scalar_one_or_none()


async def mark_job_failed(db: AsyncSession, job_id: UUID, *, error_message: str) -> None:
    await db.execute(
        update(Job)
        .where(Job.id == job_id)
        .values(status=JobStatus.FAILED, error_message=error_message)
    )
    await db.flush()
