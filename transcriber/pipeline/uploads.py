"""In-memory upload registry: files waiting for a job, keyed by upload_id, expired after a TTL."""
import logging
import os
import re
import shutil
import time
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Callable, Dict, Optional

from transcriber.core.errors import MissingInputError, UploadTooLargeError

logger = logging.getLogger(__name__)

COPY_BUFFER_BYTES = 1024 * 1024
_UNSAFE_NAME_RE = re.compile(r"[^\w.\- ]+")


@dataclass(frozen=True)
class UploadRecord:
    """A stored upload: upload_id, path on disk, original filename, creation time, size and declared content type.
    Why available: What POST /api/upload returns a handle to and what POST /api/jobs resolves before starting a job."""

    upload_id: str
    path: str
    original_name: str
    created_at: float
    size_bytes: int = 0
    content_type: Optional[str] = None


def safe_filename(name: str) -> str:
    """Strip directories and unsafe characters from a client-supplied filename; falls back to 'upload.bin'."""
    base = os.path.basename((name or "").replace("\\", "/")).strip()
    base = _UNSAFE_NAME_RE.sub("_", base).strip(". ")
    return base[:120] or "upload.bin"


def remove_path(path: Optional[str]) -> None:
    """Delete a file or directory tree, ignoring every error. Used by sweeps and job cleanup."""
    if not path:
        return
    try:
        if os.path.isdir(path):
            shutil.rmtree(path, ignore_errors=True)
        elif os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.debug("Could not remove %s: %s", path, e)


class UploadRegistry:
    """Owns uploaded files between POST /api/upload and job creation.

    Records are immutable; the only mutations are insert (store) and delete
    (discard/sweep). Each upload lives in its own directory under `root` so
    concurrent uploads never collide on disk.
    """

    def __init__(
        self,
        root: str,
        ttl_seconds: float,
        max_bytes: int,
        clock: Callable[[], float] = time.time,
    ):
        self.root = root
        self.ttl_seconds = ttl_seconds
        self.max_bytes = max_bytes
        self.clock = clock
        self._records: Dict[str, UploadRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def store(
        self,
        stream: Optional[BinaryIO],
        filename: Optional[str],
        content_type: Optional[str] = None,
    ) -> UploadRecord:
        """Copy an inbound file into <root>/<upload_id>/ and register it. Raises MissingInputError with no file, UploadTooLargeError above max_bytes.
        Why available: Moves the payload out of the framework's spooled temp file to a location that survives until the TTL."""
        if stream is None or not (filename or "").strip():
            raise MissingInputError("No file uploaded. Field name must be 'file'.")

        upload_id = uuid.uuid4().hex
        upload_dir = os.path.join(self.root, upload_id)
        os.makedirs(upload_dir, exist_ok=True)
        original_name = os.path.basename(filename.replace("\\", "/"))
        path = os.path.join(upload_dir, safe_filename(original_name))

        written = 0
        try:
            with open(path, "wb") as out:
                while True:
                    block = stream.read(COPY_BUFFER_BYTES)
                    if not block:
                        break
                    written += len(block)
                    if written > self.max_bytes:
                        raise UploadTooLargeError(
                            f"File exceeds {self.max_bytes // (1024 * 1024)} MB limit.",
                            limit_bytes=self.max_bytes,
                        )
                    out.write(block)
        except BaseException:
            remove_path(upload_dir)
            raise

        if written == 0:
            remove_path(upload_dir)
            raise MissingInputError("Uploaded file is empty.")

        record = UploadRecord(
            upload_id=upload_id,
            path=path,
            original_name=original_name,
            created_at=self.clock(),
            size_bytes=written,
            content_type=content_type,
        )
        self._records[upload_id] = record
        logger.info(
            "Stored upload %s (%d bytes)", original_name, written, extra={"upload_id": upload_id}
        )
        return record

    def _expired(self, record: UploadRecord, now: float) -> bool:
        return now - record.created_at > self.ttl_seconds

    def resolve(self, upload_id: Optional[str]) -> Optional[UploadRecord]:
        """Return the live record for upload_id, or None if it was never issued or is older than the TTL."""
        if not upload_id:
            return None
        record = self._records.get(upload_id)
        if record is None or self._expired(record, self.clock()):
            return None
        return record

    def discard(self, upload_id: str) -> Optional[UploadRecord]:
        """Forget a record without touching its file (the job that captured the path owns it now)."""
        return self._records.pop(upload_id, None)

    def sweep(self) -> int:
        """Remove every record older than the TTL and delete its directory (best-effort). Returns the count removed.
        Why available: Called periodically from the app lifespan so abandoned uploads do not fill the disk."""
        now = self.clock()
        expired = [r for r in self._records.values() if self._expired(r, now)]
        for record in expired:
            self._records.pop(record.upload_id, None)
            remove_path(os.path.dirname(record.path))
        if expired:
            logger.info("Swept %d expired upload(s)", len(expired))
        return len(expired)
