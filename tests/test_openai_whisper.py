from __future__ import annotations

import asyncio

import httpx
import pytest

from dualsub.asr.openai_whisper import OpenAIWhisperTranscriber
from dualsub.errors import CredentialMissing, PermissionDenied, RecognitionFailed


def _transcriber(handler) -> OpenAIWhisperTranscriber:
    return OpenAIWhisperTranscriber("sk-test", transport=httpx.MockTransport(handler))


def _run(transcriber: OpenAIWhisperTranscriber, pcm16: bytes = b"\x00\x00" * 800) -> str:
    async def scenario() -> str:
        await transcriber.open()
        try:
            return await transcriber.transcribe(pcm16, 16000, 1)
        finally:
            await transcriber.close()

    return asyncio.run(scenario())


def test_transcribe_posts_wav_and_returns_text() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.read()
        return httpx.Response(200, json={"text": "  Hello   world. "})

    assert _run(_transcriber(handler)) == "Hello world."
    assert seen["auth"] == "Bearer sk-test"
    assert b"RIFF" in seen["body"]
    assert b"whisper-1" in seen["body"]


def test_rejected_key_is_permission_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    with pytest.raises(PermissionDenied):
        _run(_transcriber(handler))


def test_server_error_is_recoverable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream")

    with pytest.raises(RecognitionFailed) as exc_info:
        _run(_transcriber(handler))
    assert not exc_info.value.fatal


def test_unexpected_payload_is_recoverable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"segments": []})

    with pytest.raises(RecognitionFailed):
        _run(_transcriber(handler))


def test_missing_key_fails_open() -> None:
    transcriber = OpenAIWhisperTranscriber(None)
    with pytest.raises(CredentialMissing):
        asyncio.run(transcriber.open())
