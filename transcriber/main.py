import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import (
    FastAPI,
    UploadFile,
    File,
    HTTPException,
    Request,
    BackgroundTasks,
)
from fastapi.responses import FileResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from transcriber.core.config import settings
from transcriber.core.errors import ConfigurationError, MissingInputError, TranscriberError
from transcriber.core.openai_client import get_openai_client, ping_openai
from transcriber.guardrails.errors import as_http_500, as_http_error
from transcriber.guardrails.rate_limit import SimpleRateLimiter
from transcriber.guardrails.upload_limit import UploadSizeLimitMiddleware
from transcriber.models.schemas import (
    UploadResponse,
    CreateJobRequest,
    CreateJobResponse,
    JobStatusResponse,
    TranscribeResponse,
    LimitsResponse,
)
from transcriber.observability.logger import setup_logging
from transcriber.observability.middleware import RequestTimingMiddleware
from transcriber.pipeline.jobs import JobRegistry, JobStatus
from transcriber.pipeline.transcription import OpenAITranscriber, Transcriber
from transcriber.pipeline.uploads import UploadRegistry
from transcriber.pipeline.worker import TranscriptionService
from transcriber.prompts.loader import get_transcription_prompt

logger = logging.getLogger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static")

RATE_LIMIT_REQUESTS = 20
RATE_LIMIT_WINDOW_SECONDS = 60
POLL_INTERVAL_MS = 1200
rate_limiter = SimpleRateLimiter(max_requests=RATE_LIMIT_REQUESTS, window_seconds=RATE_LIMIT_WINDOW_SECONDS)


def make_transcriber() -> Transcriber:
    """Build the OpenAI-backed transcriber from settings. Raises ConfigurationError without OPENAI_API_KEY."""
    return OpenAITranscriber(
        client=get_openai_client(),
        model=settings.transcribe_model,
        language=settings.transcribe_language,
        prompt=get_transcription_prompt(),
    )


# -------------------------
# Registries (volatile, process lifetime)
# -------------------------

os.makedirs(settings.upload_dir, exist_ok=True)
os.makedirs(settings.work_dir, exist_ok=True)

uploads = UploadRegistry(
    root=settings.upload_dir,
    ttl_seconds=settings.upload_ttl_seconds,
    max_bytes=settings.max_upload_bytes,
)
jobs = JobRegistry()
service = TranscriptionService(settings, uploads, jobs, make_transcriber)


async def _sweep_uploads_forever(interval_seconds: float) -> None:
    """Purge expired uploads and never-started jobs every interval_seconds until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            service.uploads.sweep()
            service.sweep_stale_jobs()
        except Exception as e:
            logger.error("Upload sweep failed: %s", e, exc_info=e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; transcription requests will fail with 500")
    sweeper = asyncio.create_task(_sweep_uploads_forever(settings.sweep_interval_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


# -------------------------
# App setup
# -------------------------

app = FastAPI(title="Media Transcriber", lifespan=lifespan)
app.add_middleware(
    UploadSizeLimitMiddleware,
    max_bytes=lambda: service.uploads.max_bytes,
    paths=("/api/upload", "/api/transcribe"),
)
app.add_middleware(RequestTimingMiddleware)
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/", include_in_schema=False)
def root():
    """Serves the browser entry page (upload, start job, poll progress)."""
    return FileResponse(os.path.join(STATIC_DIR, "index.html"))


@app.get("/health")
def health():
    """Returns 200 OK with status. Used by load balancers and container probes."""
    return {"status": "ok"}


@app.get("/api/limits", response_model=LimitsResponse)
def limits():
    """Returns upload and chunking limits plus the suggested poll interval.
    Why available: Lets the UI reject oversized files before uploading them."""
    return LimitsResponse(
        max_upload_mb=settings.max_upload_mb,
        upload_ttl_seconds=settings.upload_ttl_seconds,
        chunk_threshold_seconds=settings.chunk_threshold_seconds,
        chunk_seconds=settings.chunk_seconds,
        max_chunks=settings.max_chunks,
        poll_interval_ms=POLL_INTERVAL_MS,
        rate_limit_requests=RATE_LIMIT_REQUESTS,
        rate_limit_window_seconds=RATE_LIMIT_WINDOW_SECONDS,
    )


@app.get("/api/ping-openai")
async def ping_openai_route():
    """Checks whether this server can reach the OpenAI API with the configured key.
    Why available: Deployment diagnostic; most failed jobs on a new host are egress or DNS problems."""
    try:
        status, body = await ping_openai()
    except ConfigurationError as e:
        raise as_http_error(e)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"ping failed: {e}")
    return PlainTextResponse(body, status_code=status)


# -------------------------
# Upload
# -------------------------

@app.post("/api/upload", response_model=UploadResponse)
async def upload(request: Request, file: Optional[UploadFile] = File(None)):
    """Stores an uploaded media file and returns uploadId. The file waits up to the upload TTL for POST /api/jobs.
    Why available: Splits the slow upload from the slow transcription so each gets its own progress bar."""
    rate_limiter.check(request)
    try:
        if file is None:
            raise MissingInputError("No file uploaded. Field name must be 'file'.")
        record = await run_in_threadpool(service.uploads.store, file.file, file.filename, file.content_type)
    except TranscriberError as e:
        raise as_http_error(e)
    finally:
        if file is not None:
            await file.close()
    return UploadResponse(upload_id=record.upload_id, original_name=record.original_name)


# -------------------------
# Async jobs
# -------------------------

@app.post("/api/jobs", response_model=CreateJobResponse)
async def create_job(req: CreateJobRequest, request: Request, background_tasks: BackgroundTasks):
    """Creates a transcription job for an upload and runs it in the background. Client polls GET /api/jobs/{job_id} (queued / processing / done / error).
    Why available: Transcribing long recordings takes minutes; the request returns at once with a job handle."""
    rate_limiter.check(request)
    try:
        if not (req.upload_id or "").strip():
            raise MissingInputError("Missing uploadId")
        job = service.create_job(req.upload_id)
    except TranscriberError as e:
        raise as_http_error(e)

    background_tasks.add_task(service.run_job, job.job_id)
    return CreateJobResponse(job_id=job.job_id)


@app.get("/api/jobs/{job_id}", response_model=JobStatusResponse)
def job_status(job_id: str):
    """Returns a snapshot of the job: status, progress {pct, message}, resultText when done, error when failed.
    Why available: The progress protocol; polled until status is terminal."""
    try:
        job = service.get_status(job_id)
    except TranscriberError as e:
        raise as_http_error(e)
    return JobStatusResponse.from_job(job)


# -------------------------
# One-shot transcription (upload + wait)
# -------------------------

@app.post("/api/transcribe", response_model=TranscribeResponse)
async def transcribe(request: Request, file: Optional[UploadFile] = File(None)):
    """Uploads, transcribes and returns {text} in one request. Runs the same pipeline as the job flow.
    Why available: Simple clients (curl, scripts) that do not want to poll."""
    rate_limiter.check(request)
    try:
        service.settings.require_openai_key()
        if file is None:
            raise MissingInputError("No file uploaded. Field name must be 'file'.")
        record = await run_in_threadpool(service.uploads.store, file.file, file.filename, file.content_type)
        job = service.create_job(record.upload_id)
    except TranscriberError as e:
        raise as_http_error(e)
    except Exception as e:
        raise as_http_500(e)
    finally:
        if file is not None:
            await file.close()

    done = await service.run_job(job.job_id)
    if done is None or done.status is not JobStatus.DONE:
        detail = done.error if done is not None else "unknown error"
        raise HTTPException(status_code=500, detail=f"Transcription failed: {detail}")
    return TranscribeResponse(text=done.result_text or "")


def run() -> None:
    """Console entry point: serve the app with uvicorn on $PORT (default 8000)."""
    import uvicorn

    uvicorn.run("transcriber.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
