from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from transcriber.pipeline.jobs import Job, JobStatus


class UploadResponse(BaseModel):
    """Response for POST /api/upload. Why available: The client keeps upload_id to start a job later."""

    model_config = ConfigDict(populate_by_name=True)

    upload_id: str = Field(..., alias="uploadId", description="Opaque handle for the stored file")
    original_name: str = Field(..., alias="originalName")


class CreateJobRequest(BaseModel):
    """Request body for POST /api/jobs. Why available: Names the upload to transcribe."""

    model_config = ConfigDict(populate_by_name=True)

    upload_id: Optional[str] = Field(None, alias="uploadId", description="Upload ID returned by /api/upload")


class CreateJobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")


class ProgressModel(BaseModel):
    pct: int = Field(..., ge=0, le=100)
    message: str


class JobStatusResponse(BaseModel):
    """Response for GET /api/jobs/{job_id}: status, progress, and result text or error.
    Why available: The only progress channel; clients poll it until status is done or error."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: JobStatus
    progress: ProgressModel
    result_text: str = Field("", alias="resultText", description="Transcript; empty until status is done")
    error: Optional[str] = Field(None, description="Failure detail; set only when status is error")
    original_name: Optional[str] = Field(None, alias="originalName")
    chunk_count: int = Field(0, alias="chunkCount", ge=0)
    truncated: bool = False

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            job_id=job.job_id,
            status=job.status,
            progress=ProgressModel(pct=job.progress.pct, message=job.progress.message),
            result_text=job.result_text or "",
            error=job.error,
            original_name=job.original_name,
            chunk_count=job.chunk_count,
            truncated=job.truncated,
        )


class TranscribeResponse(BaseModel):
    """Response for the one-shot POST /api/transcribe."""

    text: str


class LimitsResponse(BaseModel):
    """Response for GET /api/limits. Why available: Lets the UI check file size before uploading and pick a poll interval."""

    max_upload_mb: int = Field(..., description="Max upload file size in MB")
    upload_ttl_seconds: int = Field(..., description="How long an upload waits for a job before it is purged")
    chunk_threshold_seconds: int = Field(..., description="Audio longer than this is split into chunks")
    chunk_seconds: int = Field(..., description="Length of each chunk")
    max_chunks: int = Field(..., description="Chunks beyond this are dropped (transcript is marked truncated)")
    poll_interval_ms: int = Field(..., description="Suggested status poll interval")
    rate_limit_requests: int = Field(..., description="Rate limit requests per window")
    rate_limit_window_seconds: int = Field(..., description="Rate limit window in seconds")
