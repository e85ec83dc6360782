# backend/vidscribe/registry.py
"""
In-memory job registry.

One instance is built when the app starts and handed to the pipeline and
to every progress channel. Readers always get a private copy of a job, and
writers replace the stored record in one step, so nobody sees a half-applied
update. Terminal jobs are dropped once the retention window has passed.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .config import JOB_RETENTION
from .models import Job, JOB_STATUSES, COMPLETE, ERROR, PROCESSING

logger = logging.getLogger(__name__)


class JobRegistry:
    def __init__(self, retention: float = JOB_RETENTION, clock: Callable[[], float] = time.monotonic):
        self.retention = retention
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked()
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return self.get(job_id) is not None

    def create(self, job_id: str, **fields) -> Job:
        job = Job(id=job_id, status=PROCESSING, progress=0, **fields)
        with self._lock:
            self._purge_locked()
            if job_id in self._jobs:
                raise ValueError(f"Job already exists: {job_id}")
            self._jobs[job_id] = job
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            self._purge_locked()
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def mutate(self, job_id: str, fn: Callable[[Job], None]) -> Optional[Job]:
        """Apply ``fn`` to a draft of the job and store the result.

        Returns the stored job, or None if the id is unknown. Terminal jobs
        are returned unchanged without calling ``fn``.
        """
        with self._lock:
            self._purge_locked()
            current = self._jobs.get(job_id)
            if current is None:
                return None
            if current.is_terminal:
                return current.model_copy(deep=True)

            draft = current.model_copy(deep=True)
            fn(draft)
            self._settle(current, draft)
            self._jobs[job_id] = draft
            return draft.model_copy(deep=True)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    # --- shorthands used by the pipeline ---

    def update_progress(self, job_id: str, percent: int) -> Optional[Job]:
        def apply(job: Job):
            job.progress = percent
        return self.mutate(job_id, apply)

    def complete(self, job_id: str, result: str, raw_result) -> Optional[Job]:
        def apply(job: Job):
            job.result = result
            job.raw_result = raw_result
            job.status = COMPLETE
            job.progress = 100
        return self.mutate(job_id, apply)

    def fail(self, job_id: str, message: Optional[str] = None) -> Optional[Job]:
        def apply(job: Job):
            job.status = ERROR
            job.progress = 0
            job.message = message
        return self.mutate(job_id, apply)

    # --- internals ---

    def _settle(self, current: Job, draft: Job):
        if draft.id != current.id or draft.file_name != current.file_name:
            raise ValueError("Job id and file name are immutable")
        if draft.status not in JOB_STATUSES:
            raise ValueError(f"Unknown job status: {draft.status}")

        if draft.status == PROCESSING:
            if draft.result is not None or draft.raw_result is not None:
                raise ValueError("Result can only be stored together with status=complete")
            # progress never goes backwards while the job is running
            draft.progress = max(current.progress, min(int(draft.progress), 100))
        elif draft.status == ERROR:
            draft.progress = 0
            draft.result = None
            draft.raw_result = None

        draft.updated_at = datetime.now(timezone.utc)
        if draft.is_terminal:
            draft.finished_at = self._clock()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.finished_at is not None and now - job.finished_at > self.retention
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug("Dropped %d expired job(s)", len(expired))
        return len(expired)
