"""
DTO for RabbitMQ payloads between API and worker.

Wire format (camelCase, locators are Blob Store URLs):
{"jobId", "video1Path", "video2Path", "audioOption", "layoutOption", "attempt"}
"""

from __future__ import annotations

from enum import Enum
from typing import Optional
from uuid import UUID

import orjson
from pydantic import BaseModel, ConfigDict, Field


class AudioOption(str, Enum):
    FIRST_ONLY = "audio1"
    SECOND_ONLY = "audio2"
    MIX_BOTH = "audioBoth"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AudioOption"]:
        """Return the option for a form value, or None if unrecognised."""
        try:
            return cls(value)
        except ValueError:
            return None


class LayoutOption(str, Enum):
    HORIZONTAL = "horizontal"  # clips top/bottom
    VERTICAL = "vertical"      # clips left/right

    @classmethod
    def parse(cls, value: Optional[str]) -> "LayoutOption":
        """Anything other than a known layout falls back to vertical."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.VERTICAL


class JobQueueMessage(BaseModel):
    job_id: UUID = Field(alias="jobId")
    video1_path: str = Field(alias="video1Path")
    video2_path: str = Field(alias="video2Path")
    audio_option: AudioOption = Field(alias="audioOption")
    layout_option: LayoutOption = Field(default=LayoutOption.VERTICAL, alias="layoutOption")
    attempt: int = Field(default=1, ge=1)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_bytes(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json", by_alias=True))

    @classmethod
    def from_bytes(cls, body: bytes) -> "JobQueueMessage":
        return cls.model_validate(orjson.loads(body))

    def next_attempt(self) -> "JobQueueMessage":
        return self.model_copy(update={"attempt": self.attempt + 1})
