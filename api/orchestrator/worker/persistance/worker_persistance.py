from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update

from api.orchestrator.db.models import Job, JobAttempt, JobStatus, AttemptOutcome
from api.orchestrator.db.session import get_db_session
from api.orchestrator.models.dto import JobQueueMessage


async def ensure_job(message: JobQueueMessage) -> Job:
    """
    Return the job row for a descriptor, creating it if the producer did
    not (descriptors are self-contained, the row only tracks status).
    """
    async with get_db_session() as db:
        job = await db.get(Job, message.job_id)
        if job is None:
            job = Job(
                id=message.job_id,
                status=JobStatus.QUEUED,
                video1_url=message.video1_path,
                video2_url=message.video2_path,
                audio_option=message.audio_option.value,
                layout_option=message.layout_option.value,
            )
            db.add(job)
            await db.flush()
        return job


async def update_job_status(
    job_id: UUID,
    status: JobStatus,
    *,
    output_url: Optional[str] = None,
    error_message: Optional[str] = None,
    increment_attempts: bool = False,
) -> None:
    async with get_db_session() as db:
        values = {
            "status": status,
            "updated_at": datetime.now(timezone.utc),
        }

        if output_url is not None:
            values["output_url"] = output_url
            values["error_message"] = None
        if error_message is not None:
            values["error_message"] = error_message

        stmt = update(Job).where(Job.id == job_id)
        if increment_attempts:
            stmt = stmt.values(**values, attempt_count=Job.attempt_count + 1)
        else:
            stmt = stmt.values(**values)

        await db.execute(stmt)


async def create_job_attempt(job_id: UUID, attempt_no: int, worker_name: str) -> int:
    """
    Start an attempt row. A redelivered message (worker crash before ack)
    reuses the row for its attempt number instead of violating the unique key.
    """
    async with get_db_session() as db:
        result = await db.execute(
            select(JobAttempt).where(
                JobAttempt.job_id == job_id,
                JobAttempt.attempt_no == attempt_no,
            )
        )
        attempt = result.scalar_one_or_none()

        if attempt is None:
            attempt = JobAttempt(job_id=job_id, attempt_no=attempt_no)
            db.add(attempt)

        attempt.worker_name = worker_name
        attempt.started_at = datetime.now(timezone.utc)
        attempt.finished_at = None
        attempt.outcome = None
        attempt.error_detail = None

        await db.flush()
        return attempt.id


async def finish_job_attempt(
    attempt_id: int,
    outcome: AttemptOutcome,
    *,
    error_detail: Optional[str] = None,
) -> None:
    async with get_db_session() as db:
        result = await db.execute(select(JobAttempt).where(JobAttempt.id == attempt_id))
        attempt = result.scalar_one_or_none()

        if not attempt:
            return

        finished_at = datetime.now(timezone.utc)
        attempt.finished_at = finished_at
        attempt.outcome = outcome
        attempt.error_detail = error_detail

        if attempt.started_at:
            started_at = attempt.started_at
            if started_at.tzinfo is None:  # SQLite drops tzinfo
                started_at = started_at.replace(tzinfo=timezone.utc)
            attempt.duration_ms = int((finished_at - started_at).total_seconds() * 1000)
