# backend/vidscribe/exceptions.py
"""
Error taxonomy for the transcription service.

Everything raised inside a pipeline run ends up as the job's ``error``
status; only ``ValidationError`` and ``NotFound`` reach an HTTP caller.
"""
from typing import Optional


class VidscribeError(Exception):
    """Base exception for all service errors."""


class ValidationError(VidscribeError):
    """Missing or unusable upload. The job is never created."""


class ToolUnavailable(VidscribeError):
    """ffmpeg or ffprobe could not be found."""

    def __init__(self, tool: str, message: Optional[str] = None):
        self.tool = tool
        super().__init__(message or f"{tool} binary not found")


class ProcessFailure(VidscribeError):
    """The transcoder exited non-zero or could not be spawned."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)


class RecognitionServiceError(VidscribeError):
    """Network, auth or service failure from the speech-to-text vendor."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class NotFound(VidscribeError):
    """Unknown or expired job id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
