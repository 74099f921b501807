import logging
from fastapi import HTTPException

from transcriber.core.errors import TranscriberError

logger = logging.getLogger(__name__)


def as_http_error(e: TranscriberError) -> HTTPException:
    """Map a service error to an HTTPException using its status_code and message.
    Why available: Routes raise the domain error taxonomy; this keeps the status mapping in one place."""
    if e.status_code >= 500:
        logger.error("Request failed: %s", e)
    return HTTPException(status_code=e.status_code, detail=str(e))


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    logger.error("Unhandled error: %s", e, exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")
