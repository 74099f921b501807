"""Reject oversized uploads from the Content-Length header, before the body is read."""
import logging
from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

# room for multipart boundaries and part headers around the file itself
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def _declared_length(request: Request):
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """413 for POSTs to `paths` whose declared body exceeds max_bytes() plus multipart overhead.
    Requests without a Content-Length pass through; the upload store enforces the limit while copying."""

    def __init__(self, app, max_bytes: Callable[[], int], paths: Iterable[str]):
        super().__init__(app)
        self.max_bytes = max_bytes
        self.paths = frozenset(paths)

    async def dispatch(self, request: Request, call_next):
        if request.method == "POST" and request.url.path in self.paths:
            declared = _declared_length(request)
            limit = self.max_bytes()
            if declared is not None and declared > limit + MULTIPART_OVERHEAD_BYTES:
                logger.warning("Rejected %s: Content-Length %d over limit", request.url.path, declared)
                return JSONResponse(
                    {"detail": f"File exceeds {limit // (1024 * 1024)} MB limit."},
                    status_code=413,
                )
        return await call_next(request)
