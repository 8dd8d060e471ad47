# api/orchestrator/db/models/__init__.py
from .base import Base
from .enums import JobStatus, AttemptOutcome, job_status_enum, attempt_outcome_enum
from .job import Job
from .job_attempt import JobAttempt

__all__ = [
    "Base",
    "JobStatus",
    "AttemptOutcome",
    "job_status_enum",
    "attempt_outcome_enum",
    "Job",
    "JobAttempt",
]
