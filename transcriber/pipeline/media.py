"""ffmpeg / ffprobe wrappers: convert any media file to speech-sized mp3 and probe its duration.

Output is mono, 16 kHz, 32 kbit/s mp3; small enough to upload quickly and
well inside the transcription API's payload limit for a 10 minute slice.
Both tools run as asyncio subprocesses so a long conversion never blocks the
event loop that serves status polls.
"""
import asyncio
import logging
import os
import shutil
from typing import List, Optional, Tuple

from transcriber.core.errors import ConversionError

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_BITRATE = "32k"
FFPROBE_TIMEOUT_SECONDS = 30
STDERR_TAIL_CHARS = 500


def find_binary(name: str) -> str:
    """Return the path of an executable on PATH.

    Raises:
        ConversionError: If the binary is not installed.
    """
    path = shutil.which(name)
    if path is None:
        raise ConversionError(f"{name} binary not found on PATH")
    return path


async def run_command(args: List[str], timeout: float) -> Tuple[str, str]:
    """Run an external command and return (stdout, stderr).

    Raises:
        ConversionError: On a non-zero exit status or when `timeout` elapses
            (the process is killed first).
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise ConversionError(
            f"{os.path.basename(args[0])} did not finish within {timeout:.0f}s"
        ) from exc

    stdout = out.decode("utf-8", errors="replace") if out else ""
    stderr = err.decode("utf-8", errors="replace") if err else ""
    if proc.returncode != 0:
        detail = stderr.strip()[-STDERR_TAIL_CHARS:] or f"exit status {proc.returncode}"
        raise ConversionError(f"{os.path.basename(args[0])} failed: {detail}")
    return stdout, stderr


async def extract_audio(input_path: str, output_path: str, timeout: float = 1800) -> str:
    """Convert `input_path` (audio or video) to a mono 16 kHz 32 kbit/s mp3 at `output_path`.

    Returns:
        output_path.

    Raises:
        ConversionError: If the input is missing, ffmpeg is missing, ffmpeg
            fails, or it produced no output.
    """
    if not os.path.exists(input_path):
        raise ConversionError(f"Input file does not exist: {input_path}", input_path=input_path)

    ffmpeg = find_binary("ffmpeg")
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

    cmd = [
        ffmpeg,
        "-y",
        "-i", input_path,
        "-vn",
        "-ac", str(TARGET_CHANNELS),
        "-ar", str(TARGET_SAMPLE_RATE),
        "-b:a", TARGET_BITRATE,
        "-c:a", "libmp3lame",
        output_path,
    ]
    await run_command(cmd, timeout)

    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise ConversionError(
            f"ffmpeg produced no audio output for {os.path.basename(input_path)}",
            input_path=input_path,
        )
    return output_path


def parse_duration(output: str) -> Optional[float]:
    """Parse ffprobe's `format=duration` output. Returns None for empty, 'N/A' or negative values."""
    text = (output or "").strip().splitlines()
    if not text:
        return None
    try:
        value = float(text[0].strip())
    except ValueError:
        return None
    if value < 0 or value != value:  # NaN
        return None
    return value


async def probe_duration(path: str) -> Optional[float]:
    """Return the media duration in seconds, or None when it can not be determined.

    Never raises: an unknown duration sends the pipeline down the
    single-file path instead of failing the job.
    """
    try:
        ffprobe = find_binary("ffprobe")
        stdout, _ = await run_command(
            [
                ffprobe,
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                path,
            ],
            FFPROBE_TIMEOUT_SECONDS,
        )
    except (ConversionError, OSError) as e:
        logger.warning("Duration probe failed for %s: %s", os.path.basename(path), e)
        return None
    return parse_duration(stdout)
