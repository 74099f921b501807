"""Background transcription pipeline and the service object the routes talk to.

One coroutine per job drives it through extract -> probe -> (split) ->
transcribe -> stitch. Stages inside a job run strictly one after another, so
at most one ffmpeg process and one transcription call are in flight per job
and chunk order is preserved. The coroutine is the only writer of its job
record and lets no exception escape except cancellation.
"""
import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from transcriber.core.config import Settings
from transcriber.core.errors import (
    ConversionError,
    JobNotFoundError,
    JobStateError,
    UploadNotFoundError,
)
from transcriber.utils.retry import with_retry
from .chunker import (
    chunk_progress,
    plan_chunks,
    split_audio,
    stitch,
    truncation_notice,
    CHUNK_SEPARATOR,
)
from .jobs import Job, JobRegistry, JobStatus
from .media import extract_audio, probe_duration
from .transcription import Transcriber, guess_mime_type
from .uploads import UploadRegistry, remove_path

logger = logging.getLogger(__name__)

PCT_EXTRACTING = 10
PCT_SPLITTING = 35
PCT_TRANSCRIBING = 55
PCT_CHUNKS_END = 95


@dataclass
class JobFiles:
    """Every path a job may create. Cleanup deletes all of them whatever the outcome."""

    source_path: str
    upload_dir: str
    work_dir: str
    audio_path: str
    chunk_dir: str
    chunk_paths: List[str] = field(default_factory=list)

    def all_paths(self) -> List[str]:
        return [
            *self.chunk_paths,
            self.chunk_dir,
            self.audio_path,
            self.work_dir,
            self.source_path,
            self.upload_dir,
        ]


def _error_detail(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class TranscriptionService:
    """Creates jobs from uploads, runs their pipelines and answers status queries.
    Why available: Shared by POST /api/jobs (async path) and POST /api/transcribe (one-shot path) so both run the same pipeline."""

    def __init__(
        self,
        settings: Settings,
        uploads: UploadRegistry,
        jobs: JobRegistry,
        transcriber_factory: Callable[[], Transcriber],
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.uploads = uploads
        self.jobs = jobs
        self.transcriber_factory = transcriber_factory
        self.clock = clock
        self._files: Dict[str, JobFiles] = {}

    # -------------------------
    # Job creation / status
    # -------------------------

    def create_job(self, upload_id: Optional[str]) -> Job:
        """Resolve the upload, check the OpenAI credential and allocate a queued job. The caller schedules run_job(job_id).
        Raises UploadNotFoundError (no job is created) or ConfigurationError."""
        upload = self.uploads.resolve(upload_id)
        if upload is None:
            raise UploadNotFoundError(upload_id or "")
        self.settings.require_openai_key()

        job = self.jobs.create(upload.upload_id, upload.original_name)
        work_dir = os.path.join(self.settings.work_dir, job.job_id)
        # capture the path now; upload expiry must not affect the job
        self._files[job.job_id] = JobFiles(
            source_path=upload.path,
            upload_dir=os.path.dirname(upload.path),
            work_dir=work_dir,
            audio_path=os.path.join(work_dir, "audio.mp3"),
            chunk_dir=os.path.join(work_dir, "chunks"),
        )
        self.uploads.discard(upload.upload_id)
        logger.info(
            "Created job for %s",
            upload.original_name,
            extra={"job_id": job.job_id, "upload_id": upload.upload_id},
        )
        return job

    def get_status(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    # -------------------------
    # Pipeline
    # -------------------------

    def _progress(self, job_id: str, pct: int, message: str) -> None:
        now = self.clock()
        self.jobs.update(job_id, lambda j: j.advance(pct, message, now=now))
        logger.info("%d%% %s", pct, message, extra={"job_id": job_id, "stage": message})

    async def _transcribe_file(self, transcriber: Transcriber, path: str) -> str:
        with open(path, "rb") as f:
            audio = f.read()
        mime_type = guess_mime_type(path)
        filename = os.path.basename(path)
        return await with_retry(
            lambda: transcriber.transcribe(audio, mime_type, filename),
            attempts=self.settings.retry_attempts,
            backoff_seconds=self.settings.retry_backoff_seconds,
        )

    async def _run_stages(self, job_id: str, files: JobFiles) -> str:
        s = self.settings
        self._progress(job_id, PCT_EXTRACTING, "extracting audio")
        transcriber = self.transcriber_factory()

        await extract_audio(files.source_path, files.audio_path, timeout=s.ffmpeg_timeout_seconds)
        duration = await probe_duration(files.audio_path)
        logger.info("Audio duration: %s", duration, extra={"job_id": job_id})

        if duration is None or duration <= s.chunk_threshold_seconds:
            self._progress(job_id, PCT_TRANSCRIBING, "transcribing audio")
            return await self._transcribe_file(transcriber, files.audio_path)

        self._progress(job_id, PCT_SPLITTING, "splitting audio")
        files.chunk_paths = await split_audio(
            files.audio_path, files.chunk_dir, s.chunk_seconds, timeout=s.ffmpeg_timeout_seconds
        )
        if not files.chunk_paths:
            raise ConversionError("ffmpeg produced no audio chunks", job_id=job_id)
        plan = plan_chunks(files.chunk_paths, s.max_chunks)
        self.jobs.update(job_id, lambda j: j.with_chunks(len(plan.paths), plan.truncated))
        if plan.truncated:
            logger.warning(
                "Dropping %d of %d chunks over the cap", plan.dropped, plan.total, extra={"job_id": job_id}
            )

        total = len(plan.paths)
        transcripts: List[str] = []
        self._progress(job_id, PCT_TRANSCRIBING, f"transcribing chunk 1/{total}")
        for i, path in enumerate(plan.paths):
            transcripts.append(await self._transcribe_file(transcriber, path))
            done = i + 1
            message = f"transcribing chunk {done + 1}/{total}" if done < total else "finishing"
            self._progress(job_id, chunk_progress(done, total, PCT_TRANSCRIBING, PCT_CHUNKS_END), message)

        text = stitch(transcripts)
        if plan.truncated:
            text = text + CHUNK_SEPARATOR + truncation_notice(plan, s.chunk_seconds)
        return text

    async def run_job(self, job_id: str) -> Optional[Job]:
        """Run the whole pipeline for job_id and return its terminal snapshot. Only re-raises cancellation, after recording the job as failed.
        Why available: Scheduled as a background task by POST /api/jobs and awaited directly by POST /api/transcribe."""
        files = self._files.pop(job_id, None)
        try:
            if files is None:
                raise JobStateError("No input captured for job (already run?)", job_id=job_id)
            text = await self._run_stages(job_id, files)
            now = self.clock()
            job = self.jobs.update(job_id, lambda j: j.complete(text, now=now))
            logger.info("Job done (%d chars)", len(text), extra={"job_id": job_id})
        except asyncio.CancelledError:
            logger.warning("Job cancelled", extra={"job_id": job_id})
            self._fail(job_id, "cancelled")
            raise
        except Exception as e:
            detail = _error_detail(e)
            logger.error("Job failed: %s", detail, extra={"job_id": job_id}, exc_info=e)
            job = self._fail(job_id, detail)
        finally:
            if files is not None:
                self.cleanup(files)
        return job

    def _fail(self, job_id: str, detail: str) -> Optional[Job]:
        now = self.clock()
        try:
            return self.jobs.update(job_id, lambda j: j.fail(detail, now=now))
        except (JobStateError, KeyError):
            # already terminal (or unknown); keep the first outcome
            return self.jobs.get(job_id)

    def sweep_stale_jobs(self) -> int:
        """Fail and clean up jobs still queued after the upload TTL. Returns the count removed.
        Why available: A job whose background task never started (response send failed, worker lost) would otherwise keep its upload on disk forever."""
        now = self.clock()
        stale = []
        for job_id in list(self._files):
            job = self.jobs.get(job_id)
            if job is None or (
                job.status is JobStatus.QUEUED
                and now - job.created_at > self.settings.upload_ttl_seconds
            ):
                stale.append(job_id)
        for job_id in stale:
            files = self._files.pop(job_id)
            self._fail(job_id, "job never started")
            self.cleanup(files)
        if stale:
            logger.info("Swept %d stale job(s)", len(stale))
        return len(stale)

    def cleanup(self, files: JobFiles) -> None:
        """Delete the upload, converted audio and chunks. Best-effort; never raises."""
        for path in files.all_paths():
            try:
                remove_path(path)
            except Exception as e:
                logger.debug("Cleanup skipped %s: %s", path, e)

