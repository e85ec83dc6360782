# backend/vidscribe/main.py
from fastapi import FastAPI, UploadFile, File, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, BackgroundTasks
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import json, logging, os, shutil
from urllib.parse import quote

from .config import CORS_ORIGINS, PROGRESS_INTERVAL, PROGRESS_LINGER, configure_logging
from .exceptions import NotFound, ValidationError
from .models import COMPLETE
from .progress import open_channel
from .registry import JobRegistry
from .segmenter import segment
from .worker import TranscriptionPipeline, safe_filename

logger = logging.getLogger(__name__)


def create_app(
    registry: Optional[JobRegistry] = None,
    pipeline: Optional[TranscriptionPipeline] = None,
    progress_interval: float = PROGRESS_INTERVAL,
    progress_linger: float = PROGRESS_LINGER,
) -> FastAPI:
    app = FastAPI(title="Vidscribe Transcriber")

    if registry is None:
        registry = pipeline.registry if pipeline is not None else JobRegistry()
    if pipeline is None:
        pipeline = TranscriptionPipeline(registry)
    app.state.registry = registry
    app.state.pipeline = pipeline
    app.state.progress_interval = progress_interval
    app.state.progress_linger = progress_linger

    # --- CORS for development ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"error": "Job not found"})

    @app.exception_handler(ValidationError)
    async def _invalid(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    _register_routes(app)
    return app


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_pipeline(request: Request) -> TranscriptionPipeline:
    return request.app.state.pipeline


def _attachment(name: str) -> str:
    # headers must stay latin-1, so the real name goes in the RFC 5987 form
    return f"attachment; filename=\"{safe_filename(name)}\"; filename*=UTF-8''{quote(name, safe='')}"


def _register_routes(app: FastAPI):

    @app.post("/transcribe")
    async def transcribe(
        background_tasks: BackgroundTasks,
        file: Optional[UploadFile] = File(default=None),
        pipeline: TranscriptionPipeline = Depends(get_pipeline),
    ):
        """
        Accept:
          - multipart field 'file' -> UploadFile
        Returns:
          - jobId, fileName
        """
        if file is None:
            raise ValidationError("No file provided")
        try:
            job = await pipeline.submit(file)
            # processing runs after the response has been sent
            background_tasks.add_task(pipeline.run, job.id)
        except ValidationError:
            raise
        except Exception as e:
            logger.exception("Submission failed")
            raise HTTPException(status_code=500, detail=f"Transcription failed: {e}")
        return {"jobId": job.id, "fileName": job.file_name}

    @app.get("/progress/{job_id}")
    async def progress_stream(job_id: str, request: Request, registry: JobRegistry = Depends(get_registry)):
        channel = open_channel(
            registry, job_id,
            interval=request.app.state.progress_interval,
            linger=request.app.state.progress_linger,
            disconnected=request.is_disconnected,
        )

        async def body():
            async for snapshot in channel.stream():
                yield json.dumps(snapshot) + "\n"

        return StreamingResponse(
            body(),
            media_type="application/x-ndjson",
            headers={"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"},
        )

    @app.websocket("/progress-ws")
    async def progress_ws(websocket: WebSocket):
        await websocket.accept()
        job_id = websocket.query_params.get("jobId") or websocket.query_params.get("job_id")
        if not job_id:
            await websocket.send_json({"error": "missing jobId query param"})
            await websocket.close(code=1008)
            return

        state = websocket.app.state
        try:
            channel = open_channel(state.registry, job_id, interval=state.progress_interval, linger=state.progress_linger)
        except NotFound:
            await websocket.send_json({"error": "job_not_found"})
            await websocket.close()
            return

        stream = channel.stream()
        try:
            async for snapshot in stream:
                await websocket.send_json(snapshot)
        except WebSocketDisconnect:
            logger.debug("Progress subscriber for %s disconnected", job_id)
            return
        finally:
            await stream.aclose()
        await websocket.close()

    @app.get("/status/{job_id}")
    def get_status(job_id: str, registry: JobRegistry = Depends(get_registry)):
        job = registry.get(job_id)
        if not job:
            raise NotFound(job_id)
        return {"jobId": job.id, **job.snapshot()}

    @app.get("/transcript/{job_id}")
    def transcript(job_id: str, format: str = "json", registry: JobRegistry = Depends(get_registry)):
        job = registry.get(job_id)
        if not job:
            raise NotFound(job_id)
        if job.status != COMPLETE:
            raise HTTPException(status_code=409, detail=f"Job is {job.status}")

        text, mode = segment(job.result, job.raw_result)
        if format == "txt":
            stem = os.path.splitext(job.file_name)[0] or "transcript"
            return PlainTextResponse(text, headers={"Content-Disposition": _attachment(f"{stem}_transcript.txt")})
        return {"jobId": job.id, "fileName": job.file_name, "mode": mode, "text": text}

    @app.get("/health")
    def health(pipeline: TranscriptionPipeline = Depends(get_pipeline)):
        estimator = pipeline.estimator
        return {
            "status": "ok",
            "ffmpeg": shutil.which(getattr(estimator, "ffmpeg", "ffmpeg")) is not None,
            "ffprobe": shutil.which(getattr(estimator, "ffprobe", "ffprobe")) is not None,
        }


configure_logging()
app = create_app()
