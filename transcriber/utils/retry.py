import asyncio
import logging
from typing import Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lower-cased substrings of network-level failures worth another attempt.
TRANSIENT_SIGNATURES: tuple[str, ...] = (
    "econnreset",
    "connection reset",
    "etimedout",
    "timed out",
    "timeout",
    "eai_again",
    "temporary failure in name resolution",
    "socket hang up",
    "apiconnectionerror",
    "apitimeouterror",
)


def describe_error(exc: BaseException) -> str:
    """Return "<ExceptionClass>: <message>" so class names like APIConnectionError take part in matching."""
    return f"{type(exc).__name__}: {exc}"


def is_transient_error(exc: BaseException, signatures: Iterable[str] = TRANSIENT_SIGNATURES) -> bool:
    """Return True if the error description matches any transient-network signature (case-insensitive).
    Why available: The retry policy only retries failures that look network-level; everything else is terminal."""
    text = describe_error(exc).lower()
    return any(sig.lower() in text for sig in signatures)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_seconds: float = 1.0,
    retry_on: Iterable[str] = TRANSIENT_SIGNATURES,
) -> T:
    """Await fn() up to `attempts` times. Only errors matching a `retry_on` signature are retried; the delay before retry n is backoff_seconds * n.
    Why available: Wraps every transcription call so dropped connections and timeouts do not fail a multi-minute job.
    Each attempt must be an independent call; partially sent payloads are not resumed."""
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    signatures = tuple(retry_on)

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt >= attempts or not is_transient_error(e, signatures):
                raise
            delay = backoff_seconds * attempt
            logger.warning(
                "Retry %d/%d after %.1fs: %s",
                attempt,
                attempts - 1,
                delay,
                describe_error(e),
            )
            await asyncio.sleep(delay)

    # Should be unreachable, but keeps type-checkers happy.
    raise RuntimeError("with_retry exhausted without result")
