"""Exception hierarchy for the transcription service.

Everything raised on purpose derives from TranscriberError so route handlers
can map it to an HTTP status and the pipeline can record it on the job.
Transient network failures are deliberately not part of this tree: they are
recognized by signature in transcriber.utils.retry.
"""
from typing import Optional


class TranscriberError(Exception):
    """Base exception for all service errors."""

    status_code = 500

    def __init__(self, message: str, job_id: Optional[str] = None) -> None:
        self.job_id = job_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[job={self.job_id}] {super().__str__()}"
        return super().__str__()


class InputError(TranscriberError):
    """Bad or missing client input. Surfaced synchronously with a 4xx status."""

    status_code = 400


class MissingInputError(InputError):
    """Raised when a request carries no file or no upload id."""


class UploadTooLargeError(InputError):
    """Raised when an upload exceeds the configured size ceiling."""

    status_code = 413

    def __init__(self, message: str, limit_bytes: Optional[int] = None) -> None:
        self.limit_bytes = limit_bytes
        super().__init__(message)


class UploadNotFoundError(InputError):
    """Raised when an upload id was never issued or has expired."""

    status_code = 404

    def __init__(self, upload_id: str) -> None:
        self.upload_id = upload_id
        super().__init__("Upload not found (expired or invalid). Upload again.")


class JobNotFoundError(InputError):
    """Raised when a job id is unknown."""

    status_code = 404

    def __init__(self, job_id: str) -> None:
        super().__init__("Job not found")
        self.missing_job_id = job_id


class ConfigurationError(TranscriberError):
    """Raised when required configuration (e.g. OPENAI_API_KEY) is missing. Never retried."""


class ConversionError(TranscriberError):
    """Raised when ffmpeg fails to convert or split audio."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        input_path: Optional[str] = None,
    ) -> None:
        self.input_path = input_path
        super().__init__(message, job_id)


class TranscriptionError(TranscriberError):
    """Raised for terminal speech-to-text failures (auth, bad request, payload too large)."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> None:
        self.provider = provider
        super().__init__(message, job_id)


class JobStateError(TranscriberError):
    """Raised on an illegal job state or transition (e.g. finishing a job twice)."""
