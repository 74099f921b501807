import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from transcriber.core.errors import ConfigurationError

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: OpenAI key and transcription model, storage directories, upload limits, chunking policy, and retry/timeouts.
    Why available: Single source of configuration so the API, pipeline and scripts agree on limits."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    transcribe_model: str = os.getenv("TRANSCRIBE_MODEL", "gpt-4o-mini-transcribe")
    transcribe_language: str = os.getenv("TRANSCRIBE_LANGUAGE", "")
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    upload_dir: str = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "data", "uploads"))
    work_dir: str = os.getenv("WORK_DIR", os.path.join(os.getcwd(), "data", "work"))
    max_upload_mb: int = int(os.getenv("MAX_UPLOAD_MB", "300"))
    upload_ttl_seconds: int = int(os.getenv("UPLOAD_TTL_SECONDS", "7200"))  # 2 hours
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "600"))
    chunk_threshold_seconds: int = int(os.getenv("CHUNK_THRESHOLD_SECONDS", "600"))
    chunk_seconds: int = int(os.getenv("CHUNK_SECONDS", "300"))
    max_chunks: int = int(os.getenv("MAX_CHUNKS", "24"))  # 24 x 5 min = 2 hours
    retry_attempts: int = int(os.getenv("RETRY_ATTEMPTS", "3"))
    retry_backoff_seconds: float = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))
    openai_timeout_seconds: float = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "180"))
    ffmpeg_timeout_seconds: float = float(os.getenv("FFMPEG_TIMEOUT_SECONDS", "1800"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "max_upload_mb",
        "upload_ttl_seconds",
        "sweep_interval_seconds",
        "chunk_threshold_seconds",
        "chunk_seconds",
        "max_chunks",
        "retry_attempts",
        "openai_timeout_seconds",
        "ffmpeg_timeout_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure size, time and count limits are positive. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("retry_backoff_seconds")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def require_openai_key(self) -> str:
        """Return the OpenAI API key or raise ConfigurationError when it is not set.
        Why available: Job creation and the one-shot endpoint fail fast with a 500-class error instead of failing deep inside the pipeline."""
        if not self.openai_api_key.strip():
            raise ConfigurationError("Missing OPENAI_API_KEY in environment variables.")
        return self.openai_api_key


settings = Settings()
