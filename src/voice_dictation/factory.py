import logging

from voice_dictation.adapters.sounddevice_capture import SounddeviceCapture
from voice_dictation.adapters.websocket_transport import WebSocketTransport
from voice_dictation.config import DictationConfig
from voice_dictation.domain.controller import MessageCallback, SessionController, TranscriptCallback
from voice_dictation.ports.audio import resolve_encodings

logger = logging.getLogger(__name__)


def create_capture(config: DictationConfig) -> SounddeviceCapture:
    return SounddeviceCapture(
        device=config.capture_device or None,
        encodings=resolve_encodings(config.capture_encodings),
        chunk_interval_ms=config.chunk_interval_ms,
        block_duration_ms=config.block_duration_ms,
    )


def create_transport(config: DictationConfig) -> WebSocketTransport:
    return WebSocketTransport(
        api_base=config.api_base,
        stream_path=config.stream_path,
        handshake_timeout=config.handshake_timeout_seconds,
        close_timeout=config.close_timeout_seconds,
    )


def create_controller(
    config: DictationConfig,
    credential: str | None,
    on_transcript: TranscriptCallback | None = None,
    on_error: MessageCallback | None = None,
    on_limit_reached: MessageCallback | None = None,
) -> SessionController:
    # Fail on a bad encoding list at startup rather than on first record.
    resolve_encodings(config.capture_encodings)
    logger.debug("Wiring controller for %s%s", config.api_base, config.stream_path)

    return SessionController(
        capture_factory=lambda: create_capture(config),
        transport_factory=lambda: create_transport(config),
        credential=credential,
        on_transcript=on_transcript,
        on_error=on_error,
        on_limit_reached=on_limit_reached,
        duration_tick_seconds=config.duration_tick_seconds,
        flush_interval_seconds=config.flush_interval_seconds,
    )
