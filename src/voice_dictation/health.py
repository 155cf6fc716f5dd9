import logging
from dataclasses import dataclass

import sounddevice as sd

from voice_dictation.adapters.websocket_transport import build_stream_url
from voice_dictation.config import DictationConfig
from voice_dictation.ports.audio import resolve_encodings

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"audio_device", "audio_encoding", "credential", "service_url"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: DictationConfig) -> list[HealthCheckResult]:
    results = [
        check_audio_device(config),
        check_audio_encoding(config),
        check_credential(config),
        check_service_url(config),
    ]

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def check_audio_device(config: DictationConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        devices = sd.query_devices()
    except sd.PortAudioError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))

    inputs = [dev for dev in devices if dev["max_input_channels"] > 0]
    if not inputs:
        return HealthCheckResult(name=name, passed=False, detail="No input devices available")

    wanted = config.capture_device
    if wanted and not wanted.isdigit():
        if not any(wanted.lower() in dev["name"].lower() for dev in inputs):
            return HealthCheckResult(
                name=name,
                passed=True,
                detail=f"'{wanted}' not in PortAudio (will use PIPEWIRE_NODE), {len(inputs)} input(s) found",
            )
    return HealthCheckResult(name=name, passed=True, detail=f"{len(inputs)} input device(s) found")


def check_audio_encoding(config: DictationConfig) -> HealthCheckResult:
    name = "audio_encoding"
    try:
        encodings = resolve_encodings(config.capture_encodings)
    except ValueError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))

    # Named devices may only exist as PipeWire nodes; check the default then.
    device = int(config.capture_device) if config.capture_device.isdigit() else None
    for encoding in encodings:
        try:
            sd.check_input_settings(
                device=device,
                channels=1,
                dtype=encoding.dtype,
                samplerate=encoding.sample_rate,
            )
        except (sd.PortAudioError, ValueError):
            continue
        return HealthCheckResult(name=name, passed=True, detail=f"Will capture {encoding.name}")
    return HealthCheckResult(
        name=name, passed=False, detail=f"None of {', '.join(config.capture_encodings)} supported",
    )


def check_credential(config: DictationConfig) -> HealthCheckResult:
    name = "credential"
    if config.read_token():
        return HealthCheckResult(name=name, passed=True, detail="Bearer token loaded")
    source = config.token_file or "VOICE_DICTATION_TOKEN"
    return HealthCheckResult(name=name, passed=False, detail=f"Missing ({source})")


def check_service_url(config: DictationConfig) -> HealthCheckResult:
    name = "service_url"
    try:
        build_stream_url(config.api_base, "", config.stream_path)
    except ValueError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
    return HealthCheckResult(name=name, passed=True, detail=f"{config.api_base}{config.stream_path}")
