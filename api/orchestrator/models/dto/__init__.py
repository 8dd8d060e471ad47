from .queueDTO import AudioOption, JobQueueMessage, LayoutOption
from .responsesDTO import RejectedUploadResponse, JobStatusResponse, SyncUploadResponse, UploadResponse

__all__ = [
    "AudioOption",
    "LayoutOption",
    "JobQueueMessage",
    "UploadResponse",
    "SyncUploadResponse",
    "JobStatusResponse",
    "RejectedUploadResponse",
]
