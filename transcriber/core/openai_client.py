"""OpenAI clients for transcription (api_key and timeout from config)."""
from typing import Any

import httpx
from openai import AsyncOpenAI

from transcriber.core.config import settings

OPENAI_BASE_URL = "https://api.openai.com/v1"
KEEPALIVE_EXPIRY_SECONDS = 10.0

_http_client: Any = None
_openai_client: Any = None


def get_http_client() -> httpx.AsyncClient:
    """Return the shared HTTP client for all OpenAI traffic.
    Binds to 0.0.0.0 so connections go out over IPv4, and drops idle keep-alive sockets after 10 s."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(
            transport=httpx.AsyncHTTPTransport(local_address="0.0.0.0"),
            limits=httpx.Limits(keepalive_expiry=KEEPALIVE_EXPIRY_SECONDS),
            timeout=settings.openai_timeout_seconds,
        )
    return _http_client


def get_openai_client() -> AsyncOpenAI:
    """Return a singleton AsyncOpenAI client. SDK retries are off (max_retries=0): transcriber.utils.retry owns retries so attempts are counted in one place.
    Why available: Single place to configure the client so the pipeline and the one-shot endpoint share timeout and credentials.

    Raises ConfigurationError when OPENAI_API_KEY is missing."""
    global _openai_client
    if _openai_client is None:
        _openai_client = AsyncOpenAI(
            api_key=settings.require_openai_key(),
            timeout=settings.openai_timeout_seconds,
            max_retries=0,
            http_client=get_http_client(),
        )
    return _openai_client


def reset_openai_client() -> None:
    """Forget both cached clients; the next call builds them from current settings."""
    global _http_client, _openai_client
    _http_client = None
    _openai_client = None


async def ping_openai(timeout: float = 15.0) -> tuple[int, str]:
    """GET /v1/models with the configured key and return (status_code, first 500 chars of the body).
    Why available: Diagnostic for deployments where the host can not reach the API (DNS, IPv6, egress rules). Goes through the same HTTP client as transcription."""
    key = settings.require_openai_key()
    resp = await get_http_client().get(
        f"{OPENAI_BASE_URL}/models",
        headers={"Authorization": f"Bearer {key}"},
        timeout=timeout,
    )
    return resp.status_code, resp.text[:500]
