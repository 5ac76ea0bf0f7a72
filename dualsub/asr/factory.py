from __future__ import annotations

from dualsub.app.config import SPEECH_PROVIDERS, PipelineConfig, language_name
from dualsub.asr.chunked_session import ChunkedSpeechSession
from dualsub.asr.cumulative_session import CumulativeSpeechSession
from dualsub.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from dualsub.asr.faster_whisper_stream import RollingWhisperRecognizer
from dualsub.asr.gemini_live import GeminiLiveTransport
from dualsub.asr.openai_whisper import OpenAIWhisperTranscriber
from dualsub.asr.stream_base import Delivery, SpeechSession
from dualsub.asr.streaming_session import StreamingSpeechSession


def build_speech_session(config: PipelineConfig) -> SpeechSession:
    """Build a fresh, unstarted session for ``config.provider``."""
    provider = config.provider
    if provider == "gemini_live":
        transport = GeminiLiveTransport(
            config.credential_for(provider),
            model=config.gemini_live_model,
            sample_rate=config.sample_rate,
            language=language_name(config.source_language),
        )
        return StreamingSpeechSession(
            transport,
            delivery=Delivery.UTTERANCE,
            send_interval=config.send_interval_sec,
            max_stream_sec=config.max_stream_sec,
            max_reconnect_attempts=config.max_reconnect_attempts,
            reconnect_base_delay=config.reconnect_base_delay_sec,
        )

    if provider == "openai_whisper":
        transcriber = OpenAIWhisperTranscriber(
            config.credential_for(provider),
            model=config.whisper_api_model,
            language=config.source_language,
        )
        return ChunkedSpeechSession(
            transcriber,
            chunk_sec=config.chunk_sec,
            min_chunk_sec=config.min_chunk_sec,
        )

    if provider == "local_whisper":
        whisper = FasterWhisperPCM16Transcriber(model_size=config.model, language=config.source_language)

        def make_recognizer() -> RollingWhisperRecognizer:
            return RollingWhisperRecognizer(
                whisper,
                sample_rate=config.sample_rate,
                channels=1,
                interval=config.rolling_interval_sec,
                min_rms=config.rms_th,
            )

        return CumulativeSpeechSession(
            make_recognizer,
            name=provider,
            max_recognition_sec=config.max_recognition_sec,
            max_restart_attempts=config.max_reconnect_attempts,
        )

    raise ValueError(f"Unknown speech provider '{provider}'. Choose one of: {', '.join(SPEECH_PROVIDERS)}")
