import io
import os
import sys
import tempfile
from pathlib import Path
import json
from typing import Dict, List, Optional

import pytest

# Ensure repo root is on sys.path so `import transcriber...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the app's module-level registries out of the working tree
_SCRATCH = tempfile.mkdtemp(prefix="transcriber-tests-")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_SCRATCH, "uploads"))
os.environ.setdefault("WORK_DIR", os.path.join(_SCRATCH, "work"))

from transcriber.core.config import Settings  # noqa: E402
from transcriber.pipeline import worker  # noqa: E402
from transcriber.pipeline.chunker import list_chunks  # noqa: E402
from transcriber.pipeline.jobs import Job, JobRegistry  # noqa: E402
from transcriber.pipeline.uploads import UploadRegistry  # noqa: E402
from transcriber.pipeline.worker import TranscriptionService  # noqa: E402


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTranscriber:
    """Returns the payload text (fake chunks contain their own label) and records every call.
    `errors` are raised, in order, before any text is returned."""

    def __init__(self, errors: Optional[List[Exception]] = None):
        self.errors = list(errors or [])
        self.calls: List[Dict[str, object]] = []

    async def transcribe(self, audio: bytes, mime_type: str, filename: str = "audio.mp3") -> str:
        self.calls.append({"filename": filename, "mime_type": mime_type, "size": len(audio)})
        if self.errors:
            raise self.errors.pop(0)
        return audio.decode("utf-8")


class RecordingJobRegistry(JobRegistry):
    """JobRegistry that keeps every snapshot written, for progress assertions."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.history: List[Job] = []

    def create(self, upload_id: str, original_name: str) -> Job:
        job = super().create(upload_id, original_name)
        self.history.append(job)
        return job

    def update(self, job_id, fn):
        job = super().update(job_id, fn)
        self.history.append(job)
        return job


class FakeMedia:
    """Stands in for ffmpeg/ffprobe: 'converts' by writing a marker file, reports a fixed duration,
    and 'splits' into `chunk_count` files whose content is 'chunk-<n>'."""

    def __init__(self, duration: Optional[float] = 30.0, chunk_count: int = 0, fail_extract: Optional[Exception] = None):
        self.duration = duration
        self.chunk_count = chunk_count
        self.fail_extract = fail_extract
        self.split_calls: List[int] = []

    async def extract_audio(self, input_path: str, output_path: str, timeout: float = 0) -> str:
        if self.fail_extract is not None:
            raise self.fail_extract
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(b"whole-file")
        return output_path

    async def probe_duration(self, path: str) -> Optional[float]:
        return self.duration

    async def split_audio(self, input_path: str, chunk_dir: str, segment_seconds: int, timeout: float = 0) -> List[str]:
        self.split_calls.append(segment_seconds)
        os.makedirs(chunk_dir, exist_ok=True)
        # write in reverse so ordering comes from the sort, not creation order
        for i in reversed(range(self.chunk_count)):
            with open(os.path.join(chunk_dir, f"chunk_{i:03d}.mp3"), "wb") as f:
                f.write(f"chunk-{i}".encode())
        return list_chunks(chunk_dir)


@pytest.fixture
def fake_media(monkeypatch):
    media = FakeMedia()
    monkeypatch.setattr(worker, "extract_audio", media.extract_audio)
    monkeypatch.setattr(worker, "probe_duration", media.probe_duration)
    monkeypatch.setattr(worker, "split_audio", media.split_audio)
    return media


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="sk-test",
        upload_dir=str(tmp_path / "uploads"),
        work_dir=str(tmp_path / "work"),
        retry_backoff_seconds=0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def service(test_settings, clock, fake_transcriber) -> TranscriptionService:
    uploads = UploadRegistry(
        root=test_settings.upload_dir,
        ttl_seconds=test_settings.upload_ttl_seconds,
        max_bytes=test_settings.max_upload_bytes,
        clock=clock,
    )
    return TranscriptionService(
        test_settings,
        uploads,
        RecordingJobRegistry(clock=clock),
        lambda: fake_transcriber,
        clock=clock,
    )


def store_upload(service: TranscriptionService, content: bytes = b"fake media", name: str = "talk.mp4"):
    return service.uploads.store(io.BytesIO(content), name, "video/mp4")


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      item._api_logs = [{"title": "...", "request": ..., "response": ...}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    extras = getattr(rep, "extras", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        html = (
            f"<h4>{title}</h4>"
            f"<details><summary><b>Request</b></summary><pre>{pretty_json(entry.get('request', {}))}</pre></details>"
            f"<details><summary><b>Response</b></summary><pre>{pretty_json(entry.get('response', {}))}</pre></details>"
        )
        extras.append(html_extras.html(html))

    rep.extras = extras
