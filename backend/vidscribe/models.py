# backend/vidscribe/models.py
from sqlmodel import SQLModel, Field
from typing import Any, Dict, Optional
from datetime import datetime, timezone

PROCESSING = "processing"
COMPLETE = "complete"
ERROR = "error"
JOB_STATUSES = (PROCESSING, COMPLETE, ERROR)
TERMINAL_STATUSES = (COMPLETE, ERROR)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(SQLModel):
    id: str = Field(nullable=False)
    status: str = Field(default=PROCESSING, nullable=False)   # processing | complete | error
    progress: int = Field(default=0, ge=0, le=100)
    file_name: str = Field(nullable=False)
    input_path: Optional[str] = Field(default=None)
    output_path: Optional[str] = Field(default=None)
    result: Optional[str] = Field(default=None)                # set only with status=complete
    raw_result: Optional[Dict[str, Any]] = Field(default=None)
    message: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[float] = Field(default=None)         # registry clock, set on terminal

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> Dict[str, Any]:
        data = ProgressSnapshot.from_job(self).model_dump()
        # optional keys are left out rather than sent as null
        return {key: value for key, value in data.items() if value is not None}


class ProgressSnapshot(SQLModel):
    """Wire shape of one progress message; field names match the client's JSON."""

    progress: int
    status: str
    fileName: str
    result: Optional[str] = None
    rawResult: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "ProgressSnapshot":
        complete = job.status == COMPLETE
        return cls(
            progress=job.progress,
            status=job.status,
            fileName=job.file_name,
            result=job.result if complete else None,
            rawResult=job.raw_result if complete else None,
            message=job.message if job.status == ERROR else None,
        )


class ProgressEvent(SQLModel):
    frame_count: int = 0
    percent: int = Field(default=0, ge=0, le=100)
    phase: str = PROCESSING   # processing | complete | error
    message: Optional[str] = None
