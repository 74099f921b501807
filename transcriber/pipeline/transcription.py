"""Speech-to-text client interface and the OpenAI implementation."""
import logging
import mimetypes
import os
from typing import Optional, Protocol

import openai
from openai import AsyncOpenAI

from transcriber.core.errors import TranscriptionError

logger = logging.getLogger(__name__)

PROVIDER = "openai"
DEFAULT_MIME_TYPE = "application/octet-stream"
_AUDIO_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


def guess_mime_type(path: str) -> str:
    """Map an audio file extension to the media type declared with the upload."""
    ext = os.path.splitext(path)[1].lower()
    if ext in _AUDIO_MIME_TYPES:
        return _AUDIO_MIME_TYPES[ext]
    return mimetypes.guess_type(path)[0] or DEFAULT_MIME_TYPE


class Transcriber(Protocol):
    """Anything that turns an audio payload into text.

    Implementations raise TranscriptionError for terminal failures and let
    network-level errors through unchanged so the retry policy can classify
    them.
    """

    async def transcribe(self, audio: bytes, mime_type: str, filename: str = "audio.mp3") -> str:
        ...


class OpenAITranscriber:
    """Transcriber backed by OpenAI's audio transcription endpoint (response_format=text)."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
    ):
        self.client = client
        self.model = model
        self.language = language or None
        self.prompt = prompt or None

    async def transcribe(self, audio: bytes, mime_type: str, filename: str = "audio.mp3") -> str:
        """Send one audio payload and return the transcript text.
        Why available: The only place the service talks to the speech model; the pipeline calls it once per file or per chunk."""
        kwargs = {}
        if self.language:
            kwargs["language"] = self.language
        if self.prompt:
            kwargs["prompt"] = self.prompt
        try:
            resp = await self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio, mime_type),
                response_format="text",
                **kwargs,
            )
        except openai.APIConnectionError:
            # includes APITimeoutError; retried by signature
            raise
        except openai.AuthenticationError as e:
            raise TranscriptionError(
                "OpenAI rejected the API key. Check OPENAI_API_KEY.", provider=PROVIDER
            ) from e
        except openai.APIStatusError as e:
            if e.status_code == 413:
                raise TranscriptionError(
                    f"Audio payload too large for transcription ({len(audio)} bytes).",
                    provider=PROVIDER,
                ) from e
            raise TranscriptionError(
                f"Transcription failed (HTTP {e.status_code}): {e.message}", provider=PROVIDER
            ) from e

        text = resp if isinstance(resp, str) else getattr(resp, "text", "")
        return (text or "").strip()
