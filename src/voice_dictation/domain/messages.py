import json
from dataclasses import dataclass
from typing import Any, Union

from voice_dictation.domain.errors import ProtocolError
from voice_dictation.domain.tiers import SubscriptionTier


@dataclass(frozen=True)
class SessionAccepted:
    tier: SubscriptionTier
    max_duration_seconds: int
    message: str = ""

    type = "connection_established"


@dataclass(frozen=True)
class Transcript:
    text: str
    is_final: bool
    confidence: float = 0.0

    type = "transcript"


@dataclass(frozen=True)
class DurationLimitReached:
    message: str
    duration_seconds: int | None = None

    type = "duration_limit_reached"


@dataclass(frozen=True)
class ServiceError:
    message: str

    type = "error"


ProtocolMessage = Union[SessionAccepted, Transcript, DurationLimitReached, ServiceError]


def parse_message(raw: str | bytes) -> ProtocolMessage:
    """Decode one inbound JSON frame into a protocol message.

    Raises ProtocolError for anything that is not a well-formed object of a
    known ``type``.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("Failed to parse transcription service message") from exc

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError("Failed to parse transcription service message") from exc

    if not isinstance(payload, dict):
        raise ProtocolError("Transcription service message is not an object")

    message_type = payload.get("type")
    parser = _PARSERS.get(message_type)
    if parser is None:
        raise ProtocolError(f"Unknown message type from transcription service: {message_type!r}")
    return parser(payload)


def expect_session_accepted(message: ProtocolMessage) -> SessionAccepted:
    if isinstance(message, SessionAccepted):
        return message
    detail = getattr(message, "message", "")
    suffix = f": {detail}" if detail else ""
    raise ProtocolError(f"Unexpected '{message.type}' message before session was accepted{suffix}")


def _parse_session_accepted(payload: dict[str, Any]) -> SessionAccepted:
    raw_tier = payload.get("tier")
    try:
        tier = SubscriptionTier(raw_tier)
    except ValueError as exc:
        raise ProtocolError(f"Unknown subscription tier: {raw_tier!r}") from exc

    max_duration = _require_int(payload, "max_duration_seconds")
    if max_duration < 0:
        raise ProtocolError("max_duration_seconds must not be negative")

    return SessionAccepted(
        tier=tier,
        max_duration_seconds=max_duration,
        message=str(payload.get("message", "")),
    )


def _parse_transcript(payload: dict[str, Any]) -> Transcript:
    text = payload.get("transcript")
    if not isinstance(text, str):
        raise ProtocolError("transcript message is missing its text")
    is_final = payload.get("is_final", False)
    if not isinstance(is_final, bool):
        raise ProtocolError(f"is_final must be a boolean, got {is_final!r}")
    confidence = payload.get("confidence", 0.0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.0
    return Transcript(
        text=text,
        is_final=is_final,
        confidence=float(confidence),
    )


def _parse_duration_limit(payload: dict[str, Any]) -> DurationLimitReached:
    duration = payload.get("duration_seconds")
    if isinstance(duration, bool) or not isinstance(duration, int):
        duration = None
    return DurationLimitReached(
        message=str(payload.get("message") or "Maximum recording duration reached"),
        duration_seconds=duration,
    )


def _parse_service_error(payload: dict[str, Any]) -> ServiceError:
    return ServiceError(message=str(payload.get("message") or "Transcription service error"))


def _require_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"{key} must be an integer, got {value!r}")
    return value


_PARSERS = {
    SessionAccepted.type: _parse_session_accepted,
    Transcript.type: _parse_transcript,
    DurationLimitReached.type: _parse_duration_limit,
    ServiceError.type: _parse_service_error,
}
