from __future__ import annotations

import asyncio
import base64
import json
from typing import List

import pytest
from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.http11 import Response

from dualsub.asr.gemini_live import GeminiLiveTransport, build_audio_message, build_setup_message
from dualsub.errors import ConnectionFailed, CredentialMissing, PermissionDenied


class FakeWebSocket:
    def __init__(self, incoming: List[str]) -> None:
        self.sent: List[str] = []
        self.incoming = list(incoming)
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def recv(self) -> str:
        return json.dumps({"setupComplete": {}})

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for message in self.incoming:
            yield message


def _server(parts=None, turn_complete=False) -> str:
    content = {}
    if parts is not None:
        content["modelTurn"] = {"parts": [{"text": p} for p in parts]}
    if turn_complete:
        content["turnComplete"] = True
    return json.dumps({"serverContent": content})


def test_setup_and_audio_messages() -> None:
    setup = build_setup_message("gemini-2.0-flash-live-001", "English")
    assert setup["setup"]["model"] == "models/gemini-2.0-flash-live-001"
    assert setup["setup"]["generation_config"]["response_modalities"] == ["TEXT"]
    assert "English" in setup["setup"]["system_instruction"]["parts"][0]["text"]

    audio = build_audio_message(b"\x01\x02", 16000)
    chunk = audio["realtime_input"]["media_chunks"][0]
    assert chunk["mime_type"] == "audio/pcm;rate=16000"
    assert base64.b64decode(chunk["data"]) == b"\x01\x02"


def test_parse_message_accumulates_turn_text() -> None:
    transport = GeminiLiveTransport("key")
    first = transport.parse_message(_server(["The weather"]))
    second = transport.parse_message(_server([" is nice."], turn_complete=True))
    third = transport.parse_message(_server(["Next"]))

    assert [(r.text, r.is_final) for r in first] == [("The weather", False)]
    assert [(r.text, r.is_final) for r in second] == [
        ("The weather is nice.", False),
        ("The weather is nice.", True),
    ]
    assert [(r.text, r.is_final) for r in third] == [("Next", False)]


def test_parse_message_ignores_noise() -> None:
    transport = GeminiLiveTransport("key")
    assert transport.parse_message("not json") == []
    assert transport.parse_message(json.dumps({"setupComplete": {}})) == []
    assert transport.parse_message(_server(turn_complete=True)) == []


def test_connect_sends_setup_and_streams_results() -> None:
    ws = FakeWebSocket([_server(["Hello"]), _server([" there"], turn_complete=True)])
    urls = []

    async def connector(url, **kwargs):
        urls.append(url)
        return ws

    async def scenario():
        transport = GeminiLiveTransport("secret", connector=connector, sample_rate=24000)
        await transport.connect()
        await transport.send_audio(b"\x00\x00")
        results = [r async for r in transport.results()]
        await transport.close()
        return results

    results = asyncio.run(scenario())
    assert urls[0].endswith("?key=secret")
    assert json.loads(ws.sent[0])["setup"]["model"].startswith("models/")
    assert json.loads(ws.sent[1])["realtime_input"]["media_chunks"][0]["mime_type"] == "audio/pcm;rate=24000"
    assert [r.text for r in results if r.is_final] == ["Hello there"]
    assert ws.closed


def test_missing_key_is_credential_error() -> None:
    async def connector(url, **kwargs):
        raise AssertionError("should not connect")

    transport = GeminiLiveTransport(None, connector=connector)
    with pytest.raises(CredentialMissing):
        asyncio.run(transport.connect())


def test_rejected_handshake_maps_to_permission_error() -> None:
    async def connector(url, **kwargs):
        raise InvalidStatus(Response(403, "Forbidden", Headers(), b""))

    transport = GeminiLiveTransport("bad", connector=connector)
    with pytest.raises(PermissionDenied):
        asyncio.run(transport.connect())


def test_network_failure_maps_to_connection_error() -> None:
    async def connector(url, **kwargs):
        raise OSError("network unreachable")

    transport = GeminiLiveTransport("key", connector=connector)
    with pytest.raises(ConnectionFailed):
        asyncio.run(transport.connect())
