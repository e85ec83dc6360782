# backend/vidscribe/worker.py
import asyncio
import logging
import os
import re
import secrets
import string
import time

import aiofiles

from .config import STORAGE_DIR
from .exceptions import ValidationError
from .ffmpeg_utils import ProgressEstimator
from .models import Job, ProgressEvent, ERROR
from .recognition import RecognitionClient, primary_transcript
from .registry import JobRegistry

logger = logging.getLogger(__name__)

UPLOAD_CHUNK = 1024 * 1024
_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_job_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"job_{int(time.time() * 1000)}_{suffix}"


def safe_filename(name: str) -> str:
    """Basename of an upload with anything unusual replaced, for scratch paths and download names."""
    base = os.path.basename(name.replace("\\", "/"))
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("._")
    return cleaned or "upload"


# Save uploaded file in chunks (async)
async def save_upload_file(upload_file, destination: str):
    async with aiofiles.open(destination, "wb") as out_file:
        while True:
            chunk = await upload_file.read(UPLOAD_CHUNK)
            if not chunk:
                break
            await out_file.write(chunk)
    await upload_file.close()


class TranscriptionPipeline:
    """Upload -> ffmpeg -> speech-to-text, with every step mirrored into the registry."""

    def __init__(self, registry: JobRegistry, estimator=None, recognizer=None, storage_dir: str = STORAGE_DIR):
        self.registry = registry
        self.estimator = estimator or ProgressEstimator()
        self.recognizer = recognizer or RecognitionClient()
        self.storage_dir = storage_dir

    async def submit(self, upload) -> Job:
        """Write the upload to scratch storage and register the job.

        ``upload`` is anything with a ``filename`` and an async ``read(n)``,
        e.g. FastAPI's UploadFile. The job exists before this returns, so it
        is already visible to progress subscribers when ``run`` starts.
        """
        if upload is None or not getattr(upload, "filename", None):
            raise ValidationError("No file provided")

        job_id = new_job_id()
        file_name = upload.filename
        os.makedirs(self.storage_dir, exist_ok=True)
        input_path = os.path.join(self.storage_dir, f"{job_id}_input_{safe_filename(file_name)}")
        output_path = os.path.join(self.storage_dir, f"{job_id}_audio.wav")

        try:
            await save_upload_file(upload, input_path)
        except Exception:
            self._cleanup(input_path)
            raise

        job = self.registry.create(
            job_id,
            file_name=file_name,
            input_path=input_path,
            output_path=output_path,
        )
        logger.info("Job %s created for %s", job_id, file_name)
        return job

    async def run(self, job_id: str) -> None:
        """Process one job to a terminal state. Never raises except on cancellation."""
        job = self.registry.get(job_id)
        if job is None:
            logger.warning("Job %s vanished before processing started", job_id)
            return

        try:
            total_frames = await self.estimator.count_frames(job.input_path)
            logger.debug("Job %s: estimating against %d frames", job_id, total_frames)

            def on_progress(event: ProgressEvent):
                self._mirror(job_id, event)

            await self.estimator.transcode(job.input_path, job.output_path, total_frames, on_progress)

            async with aiofiles.open(job.output_path, "rb") as f:
                audio = await f.read()

            raw_result = await self.recognizer.transcribe(audio)
            transcript = primary_transcript(raw_result)
            self.registry.complete(job_id, transcript, raw_result)
            logger.info("Job %s complete (%d characters)", job_id, len(transcript))

        except asyncio.CancelledError:
            self.registry.fail(job_id, "Cancelled")
            raise
        except Exception as e:
            logger.exception("Job %s failed", job_id)
            self.registry.fail(job_id, str(e) or e.__class__.__name__)
        finally:
            self._cleanup(job.input_path, job.output_path)

    def _mirror(self, job_id: str, event: ProgressEvent):
        # transcoding "complete" still leaves the job processing
        if event.phase == ERROR:
            self.registry.fail(job_id, event.message or "Transcoding failed")
        else:
            self.registry.update_progress(job_id, event.percent)

    def _cleanup(self, *paths):
        for path in paths:
            if not path:
                continue
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove scratch file %s: %s", path, e)
