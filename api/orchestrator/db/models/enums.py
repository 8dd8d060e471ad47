# api/orchestrator/db/models/enums.py
from enum import Enum

from sqlalchemy import Enum as SAEnum


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    FAIL = "fail"


def _values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# Stored by value ("queued"), not by member name ("QUEUED").
job_status_enum = SAEnum(
    JobStatus,
    name="job_status",
    values_callable=_values,
    validate_strings=True,
)

attempt_outcome_enum = SAEnum(
    AttemptOutcome,
    name="attempt_outcome",
    values_callable=_values,
    validate_strings=True,
)
