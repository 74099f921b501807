# Main (Home) page content for the Media Transcriber Streamlit client.
import os
import time
from typing import Callable, Optional

import requests
import streamlit as st

API_BASE = os.getenv("API_BASE", "http://localhost:8000")
POLL_SECONDS = 1.2
POLL_TIMEOUT_SECONDS = 3 * 60 * 60
UPLOAD_TYPES = ["mp3", "m4a", "wav", "ogg", "webm", "flac", "mp4", "mov", "mkv", "avi"]


def _status_badge(label: str, color: str) -> None:
    """Render a colored status badge (red = error, green = done)."""
    st.markdown(
        f'<div style="background:{color};color:white;padding:6px 14px;border-radius:6px;'
        'display:inline-block;font-weight:500;">{}</div>'.format(label),
        unsafe_allow_html=True,
    )


def _detail(resp: requests.Response, fallback: str) -> str:
    """Return the API's `detail` message from an error response, or fallback."""
    try:
        return resp.json().get("detail") or fallback
    except ValueError:
        return fallback


def upload_file(name: str, data: bytes, mime: Optional[str]) -> dict:
    """POST the file to /api/upload and return {uploadId, originalName}."""
    files = {"file": (name, data, mime or "application/octet-stream")}
    r = requests.post(f"{API_BASE}/api/upload", files=files, timeout=600)
    if r.status_code != 200:
        raise RuntimeError(_detail(r, "Upload failed"))
    return r.json()


def start_job(upload_id: str) -> str:
    """POST /api/jobs and return the jobId."""
    r = requests.post(f"{API_BASE}/api/jobs", json={"uploadId": upload_id}, timeout=30)
    if r.status_code != 200:
        raise RuntimeError(_detail(r, "Failed to start job"))
    return r.json()["jobId"]


def poll_job(
    job_id: str,
    on_progress: Callable[[int, str], None],
    poll_seconds: float = POLL_SECONDS,
    timeout_seconds: float = POLL_TIMEOUT_SECONDS,
) -> dict:
    """Poll GET /api/jobs/{job_id} until status is done or error; returns the final job payload.
    Why available: The API only reports progress through polling; this drives the progress bar."""
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        r = requests.get(f"{API_BASE}/api/jobs/{job_id}", timeout=30)
        if r.status_code != 200:
            raise RuntimeError(_detail(r, "Job status failed"))
        job = r.json()
        progress = job.get("progress") or {}
        on_progress(int(progress.get("pct", 0)), progress.get("message") or "Processing…")
        if job.get("status") in ("done", "error"):
            return job
        time.sleep(poll_seconds)
    raise RuntimeError("Timed out waiting for the transcription job")


def run_main() -> None:
    """Render the Home page: upload a media file, start transcription, show progress and the transcript."""
    st.set_page_config(page_title="Media Transcriber", layout="centered")
    st.title("🎙️ Media Transcriber")
    st.caption("Upload audio or video; the server extracts the audio and transcribes it.")

    if "upload" not in st.session_state:
        st.session_state.upload = None
    if "transcript" not in st.session_state:
        st.session_state.transcript = ""

    uploaded = st.file_uploader("Audio or video file", type=UPLOAD_TYPES)
    if uploaded is not None and st.button("📤 Upload", key="upload_btn"):
        with st.spinner("Uploading…"):
            try:
                st.session_state.upload = upload_file(uploaded.name, uploaded.getvalue(), uploaded.type)
                st.session_state.transcript = ""
            except (RuntimeError, requests.exceptions.RequestException) as e:
                st.session_state.upload = None
                st.error(f"Error: {e}")

    upload = st.session_state.upload
    if upload:
        st.success(f"Upload complete: {upload.get('originalName')}")
        if st.button("📝 Transcribe", key="transcribe_btn"):
            bar = st.progress(0, text="Starting transcription…")
            try:
                job_id = start_job(upload["uploadId"])
                st.session_state.upload = None  # consumed by the job
                job = poll_job(job_id, lambda p, m: bar.progress(p, text=m))
            except (RuntimeError, requests.exceptions.RequestException) as e:
                _status_badge(f"Error: {e}", "#dc3545")
            else:
                if job.get("status") == "done":
                    bar.progress(100, text="Done.")
                    st.session_state.transcript = job.get("resultText") or ""
                    _status_badge("✓ Transcript ready", "#28a745")
                else:
                    _status_badge(f"Error: {job.get('error') or 'Transcription failed.'}", "#dc3545")

    if st.session_state.transcript:
        st.text_area("Transcript", st.session_state.transcript, height=320)
        st.download_button(
            "Download transcript.txt",
            data=st.session_state.transcript,
            file_name="transcript.txt",
            mime="text/plain",
            key="download_transcript",
        )
