"""
DTOs for FastAPI responses.
"""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UploadResponse(BaseModel):
    message: str
    job_id: UUID = Field(alias="jobId")

    model_config = ConfigDict(populate_by_name=True)


class SyncUploadResponse(BaseModel):
    message: str
    output: str


class JobStatusResponse(BaseModel):
    """
    completed -> url is set; failed -> error is set (retries exhausted or the
    job could not be queued); processing -> neither.
    """

    status: Literal["completed", "processing", "failed"]
    url: Optional[str] = None
    error: Optional[str] = None


class RejectedUploadResponse(BaseModel):
    """400 body: FastAPI's HTTPException shape."""

    detail: str
