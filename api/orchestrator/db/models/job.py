# api/orchestrator/db/models/job.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import JobStatus, job_status_enum


class Job(Base):
    __tablename__ = "job"

    # Same value as the queue message jobId.
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    status: Mapped[JobStatus] = mapped_column(
        job_status_enum,
        default=JobStatus.QUEUED,
        nullable=False,
        index=True,
    )

    # Submission inputs (Blob Store locators + options)
    video1_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    video2_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    audio_option: Mapped[str] = mapped_column(String(16), nullable=False)
    layout_option: Mapped[str] = mapped_column(String(16), nullable=False)

    attempt_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Result info (set by worker when finished)
    output_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Failure info (set by worker on error, or by the API when enqueue fails)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    attempts: Mapped[list["JobAttempt"]] = relationship(
        "JobAttempt",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobAttempt.attempt_no",
    )

    __table_args__ = (
        Index("ix_job_status_created_at", "status", "created_at"),
    )
