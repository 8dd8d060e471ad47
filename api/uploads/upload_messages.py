"""
User-facing response texts for the upload API.
"""

MISSING_FILES_MESSAGE = "Please upload two files."
NOT_A_VIDEO_MESSAGE = "Only video files are allowed."
INVALID_AUDIO_OPTION_MESSAGE = "Invalid audio option selected."

JOB_QUEUED_MESSAGE = "Files uploaded and job queued"
SYNC_DONE_MESSAGE = "Files uploaded and processed"
