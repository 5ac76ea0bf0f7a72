from __future__ import annotations

import asyncio

import pytest

from dualsub.contracts import TranscriptEntry
from dualsub.errors import InvalidResponse, NetworkError, TranslationTimeout
from dualsub.live.coordinator import FAILED_PLACEHOLDER, DualTranslationCoordinator
from dualsub.nlp.translator.argos import ArgosTranslator
from dualsub.nlp.translator.stub import StubTranslator


def _raising(exc: BaseException):
    def translate_sync(text: str) -> str:
        raise exc

    return translate_sync


def test_download_failure_maps_to_network_error(monkeypatch: pytest.MonkeyPatch) -> None:
    tr = ArgosTranslator()
    monkeypatch.setattr(tr, "translate_sync", _raising(OSError("index unreachable")))
    with pytest.raises(NetworkError) as exc_info:
        asyncio.run(tr.translate("Hello."))
    assert not exc_info.value.fatal
    assert isinstance(exc_info.value.__cause__, OSError)


def test_library_error_maps_to_invalid_response(monkeypatch: pytest.MonkeyPatch) -> None:
    tr = ArgosTranslator()
    monkeypatch.setattr(tr, "translate_sync", _raising(AttributeError("no translation model")))
    with pytest.raises(InvalidResponse):
        asyncio.run(tr.translate("Hello."))


def test_missing_package_error_passes_through(monkeypatch: pytest.MonkeyPatch) -> None:
    tr = ArgosTranslator()
    monkeypatch.setattr(tr, "translate_sync", _raising(InvalidResponse("No Argos package found for en->xx")))
    with pytest.raises(InvalidResponse, match="No Argos package"):
        asyncio.run(tr.translate("Hello."))


def test_slow_translation_times_out(monkeypatch: pytest.MonkeyPatch) -> None:
    import time

    tr = ArgosTranslator()
    monkeypatch.setattr(tr, "translate_sync", lambda text: time.sleep(0.2) or "late")
    with pytest.raises(TranslationTimeout):
        asyncio.run(tr.translate("Hello.", timeout=0.05))


def test_refined_argos_failure_shows_placeholder(monkeypatch: pytest.MonkeyPatch) -> None:
    refined = ArgosTranslator()
    monkeypatch.setattr(refined, "translate_sync", _raising(OSError("connection reset")))
    changed = []

    async def scenario() -> TranscriptEntry:
        coordinator = DualTranslationCoordinator(StubTranslator(), refined, on_change=changed.append)
        coordinator.begin_run()
        entry = TranscriptEntry(original_text="Hi.", finalized=True)
        assert coordinator.request_refined(entry)
        await coordinator.drain(timeout=1.0)
        await coordinator.end_run()
        return entry

    entry = asyncio.run(scenario())
    assert entry.quick_translation == FAILED_PLACEHOLDER
    assert entry.context_translation is None
    assert "connection reset" in entry.translation_error
    assert changed == [entry]
