import os
import re
from dataclasses import dataclass
from typing import Iterable, List

from .media import find_binary, run_command

CHUNK_PREFIX = "chunk_"
CHUNK_EXT = ".mp3"
CHUNK_SEPARATOR = "\n\n"
_CHUNK_RE = re.compile(r"^chunk_\d+\.mp3$")


@dataclass
class ChunkPlan:
    """Chunk files to transcribe, in temporal order, plus how many were found before the cap.
    Why available: The worker needs both the kept list and the total to decide on the truncation notice."""

    paths: List[str]
    total: int

    @property
    def dropped(self) -> int:
        return self.total - len(self.paths)

    @property
    def truncated(self) -> bool:
        return self.dropped > 0


def list_chunks(chunk_dir: str) -> List[str]:
    """Return chunk file paths in chunk_dir sorted by their zero-padded sequence suffix. Other files are ignored."""
    names = [n for n in os.listdir(chunk_dir) if _CHUNK_RE.match(n)]
    return [os.path.join(chunk_dir, n) for n in sorted(names)]


def plan_chunks(paths: List[str], max_chunks: int) -> ChunkPlan:
    """Keep the first max_chunks paths (already sorted); the rest are dropped."""
    return ChunkPlan(paths=list(paths[:max_chunks]), total=len(paths))


async def split_audio(
    input_path: str,
    chunk_dir: str,
    segment_seconds: int,
    timeout: float = 1800,
) -> List[str]:
    """Cut input_path into segment_seconds-long mp3 files chunk_000.mp3, chunk_001.mp3, ... inside chunk_dir (stream copy, no re-encode). Returns the sorted chunk paths.
    Why available: Long recordings exceed what one transcription request handles reliably; segments are transcribed one by one."""
    ffmpeg = find_binary("ffmpeg")
    os.makedirs(chunk_dir, exist_ok=True)
    pattern = os.path.join(chunk_dir, f"{CHUNK_PREFIX}%03d{CHUNK_EXT}")
    await run_command(
        [
            ffmpeg,
            "-y",
            "-i", input_path,
            "-f", "segment",
            "-segment_time", str(segment_seconds),
            "-reset_timestamps", "1",
            "-c", "copy",
            pattern,
        ],
        timeout,
    )
    return list_chunks(chunk_dir)


def stitch(transcripts: Iterable[str]) -> str:
    """Join per-chunk transcripts in order with a blank line between them."""
    return CHUNK_SEPARATOR.join(t.strip() for t in transcripts)


def truncation_notice(plan: ChunkPlan, segment_seconds: int) -> str:
    minutes = round(len(plan.paths) * segment_seconds / 60)
    return (
        f"[Transcript truncated: only the first {len(plan.paths)} of {plan.total} chunks "
        f"(about {minutes} minutes) were transcribed.]"
    )


def chunk_progress(done: int, total: int, start: int = 55, end: int = 95) -> int:
    """Linear progress between start and end for `done` of `total` chunks."""
    if total <= 0:
        return end
    return start + round((end - start) * done / total)
