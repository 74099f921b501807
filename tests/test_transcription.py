"""Tests for the OpenAI transcriber adapter and its error classification."""
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from transcriber.core.errors import TranscriptionError
from transcriber.pipeline.transcription import OpenAITranscriber, guess_mime_type
from transcriber.prompts.loader import get_transcription_prompt, load_prompts
from transcriber.utils.retry import is_transient_error

URL = "https://api.openai.com/v1/audio/transcriptions"


def _client(create: AsyncMock):
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))


def _status_error(cls, status: int):
    request = httpx.Request("POST", URL)
    response = httpx.Response(status, request=request)
    return cls(f"Error code: {status}", response=response, body=None)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/x/audio.mp3", "audio/mpeg"),
        ("chunk_000.MP3", "audio/mpeg"),
        ("a.m4a", "audio/mp4"),
        ("a.unknownext", "application/octet-stream"),
    ],
)
def test_guess_mime_type(path, expected):
    assert guess_mime_type(path) == expected


@pytest.mark.asyncio
async def test_transcribe_sends_text_request():
    create = AsyncMock(return_value="  hello world \n")
    t = OpenAITranscriber(_client(create), model="gpt-4o-mini-transcribe", language="en", prompt="verbatim")

    assert await t.transcribe(b"abc", "audio/mpeg", "chunk_001.mp3") == "hello world"
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini-transcribe"
    assert kwargs["file"] == ("chunk_001.mp3", b"abc", "audio/mpeg")
    assert kwargs["response_format"] == "text"
    assert kwargs["language"] == "en"
    assert kwargs["prompt"] == "verbatim"


@pytest.mark.asyncio
async def test_optional_fields_omitted_when_unset():
    create = AsyncMock(return_value=SimpleNamespace(text="from object"))
    t = OpenAITranscriber(_client(create), model="whisper-1", language="", prompt=None)
    assert await t.transcribe(b"abc", "audio/mpeg") == "from object"
    assert "language" not in create.await_args.kwargs
    assert "prompt" not in create.await_args.kwargs


@pytest.mark.asyncio
async def test_connection_errors_pass_through_as_transient():
    err = openai.APIConnectionError(request=httpx.Request("POST", URL))
    t = OpenAITranscriber(_client(AsyncMock(side_effect=err)), model="m")
    with pytest.raises(openai.APIConnectionError) as info:
        await t.transcribe(b"abc", "audio/mpeg")
    assert is_transient_error(info.value)


@pytest.mark.asyncio
async def test_timeout_errors_pass_through_as_transient():
    err = openai.APITimeoutError(request=httpx.Request("POST", URL))
    t = OpenAITranscriber(_client(AsyncMock(side_effect=err)), model="m")
    with pytest.raises(openai.APITimeoutError) as info:
        await t.transcribe(b"abc", "audio/mpeg")
    assert is_transient_error(info.value)


@pytest.mark.asyncio
async def test_authentication_error_is_terminal():
    err = _status_error(openai.AuthenticationError, 401)
    t = OpenAITranscriber(_client(AsyncMock(side_effect=err)), model="m")
    with pytest.raises(TranscriptionError, match="API key") as info:
        await t.transcribe(b"abc", "audio/mpeg")
    assert not is_transient_error(info.value)
    assert info.value.provider == "openai"


@pytest.mark.asyncio
async def test_payload_too_large_is_terminal():
    err = _status_error(openai.APIStatusError, 413)
    t = OpenAITranscriber(_client(AsyncMock(side_effect=err)), model="m")
    with pytest.raises(TranscriptionError, match="too large"):
        await t.transcribe(b"abc", "audio/mpeg")


@pytest.mark.asyncio
async def test_other_status_errors_are_terminal():
    err = _status_error(openai.BadRequestError, 400)
    t = OpenAITranscriber(_client(AsyncMock(side_effect=err)), model="m")
    with pytest.raises(TranscriptionError, match="HTTP 400"):
        await t.transcribe(b"abc", "audio/mpeg")


def test_prompt_hint_loaded_from_yaml():
    assert "verbatim" in get_transcription_prompt(version="v1")


def test_missing_prompt_version_has_no_hint():
    assert load_prompts("transcribe", version="does-not-exist") == {}
    assert get_transcription_prompt(version="does-not-exist") is None
