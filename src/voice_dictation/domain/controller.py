import asyncio
import logging
from collections.abc import Callable
from functools import partial

from voice_dictation.domain.errors import (
    ACCESS_DENIED_CLOSE_CODE,
    ACCESS_DENIED_MESSAGE,
    NORMAL_CLOSE_CODE,
    AccessDeniedError,
    ConnectionLostError,
    CredentialMissingError,
    DictationError,
    MicrophoneNotFoundError,
    ProtocolError,
    ServiceReportedError,
)
from voice_dictation.domain.messages import (
    DurationLimitReached,
    ProtocolMessage,
    ServiceError,
    SessionAccepted,
    Transcript,
)
from voice_dictation.domain.session import Session
from voice_dictation.domain.state import SessionState, validate_transition
from voice_dictation.domain.tiers import RemainingLevel, SubscriptionTier, remaining_level
from voice_dictation.domain.timers import PeriodicTimer
from voice_dictation.ports.audio import AudioCapturePort
from voice_dictation.ports.transport import TransportPort

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str, bool], None]
MessageCallback = Callable[[str], None]

STOP_REASON = "Client stopped recording"


class SessionController:
    """Runs one live dictation session at a time.

    The transport must accept the session before capture starts, so no audio
    is ever sent ahead of the service's ``connection_established`` message.
    Every failure goes through ``_teardown`` and ends in exactly one
    ``on_error`` or ``on_limit_reached`` call.
    """

    def __init__(
        self,
        capture_factory: Callable[[], AudioCapturePort] | None,
        transport_factory: Callable[[], TransportPort],
        credential: str | None = None,
        on_transcript: TranscriptCallback | None = None,
        on_error: MessageCallback | None = None,
        on_limit_reached: MessageCallback | None = None,
        duration_tick_seconds: float = 1.0,
        flush_interval_seconds: float = 1.0,
    ) -> None:
        self._capture_factory = capture_factory
        self._transport_factory = transport_factory
        self._credential = credential
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_limit_reached = on_limit_reached
        self._duration_tick_seconds = duration_tick_seconds
        self._flush_interval_seconds = flush_interval_seconds

        self._session = Session()
        self._session_count = 0
        self._released_transports: list[TransportPort] = []

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def transcript(self) -> str:
        return self._session.transcript.final_text

    @property
    def interim_transcript(self) -> str:
        return self._session.transcript.interim_text

    @property
    def error(self) -> str | None:
        return self._session.last_error

    @property
    def is_recording(self) -> bool:
        return self._session.state is SessionState.RECORDING

    @property
    def duration(self) -> int:
        return self._session.elapsed_seconds

    @property
    def max_duration(self) -> int:
        return self._session.max_duration_seconds

    @property
    def time_remaining(self) -> int:
        return max(0, self._session.max_duration_seconds - self._session.elapsed_seconds)

    @property
    def remaining_level(self) -> RemainingLevel:
        if not self.is_recording:
            return RemainingLevel.NORMAL
        return remaining_level(self.time_remaining)

    @property
    def tier(self) -> SubscriptionTier | None:
        return self._session.tier

    @property
    def chunks_sent(self) -> int:
        return self._session.chunks_sent

    @property
    def credential(self) -> str | None:
        return self._credential

    @credential.setter
    def credential(self, value: str | None) -> None:
        self._credential = value

    async def start_recording(self) -> None:
        current = self._session
        if current.state in (SessionState.CONNECTING, SessionState.RECORDING):
            logger.debug("start_recording ignored, session already %s", current.state.name)
            return

        capture, unmet = self._check_preconditions()

        self._session_count += 1
        session = Session(
            number=self._session_count,
            state=current.state,
            last_error=current.last_error,
        )
        if unmet is not None:
            # A start that never got going keeps the previous dictation.
            session.transcript = current.transcript
        self._session = session
        logger.info("Starting dictation session #%d", session.number)

        if unmet is not None:
            await self._fail(session, unmet)
            return

        self._transition_to(session, SessionState.CONNECTING)
        session.capture = capture
        try:
            await capture.open()
        except DictationError as exc:
            await self._fail_or_release(session, exc)
            return
        if self._abandoned(session):
            await self._teardown(session)
            return

        transport = self._transport_factory()
        session.transport = transport
        transport.on_message(partial(self._handle_message, session))
        transport.on_close(partial(self._handle_close, session))
        transport.on_error(partial(self._handle_transport_error, session))
        try:
            accepted = await transport.open(self._credential)
        except DictationError as exc:
            await self._fail_or_release(session, exc)
            return
        if self._abandoned(session):
            await self._teardown(session)
            return

        await self._begin_recording(session, accepted)

    async def stop_recording(self) -> None:
        session = self._session
        if session.state is SessionState.IDLE and not session.has_resources:
            logger.debug("stop_recording ignored, no active session")
            return

        await self._teardown(session)
        if session.state in (SessionState.CONNECTING, SessionState.RECORDING):
            self._transition_to(session, SessionState.IDLE)
        logger.info(
            "Session #%d stopped (chunks=%d, elapsed=%ds)",
            session.number, session.chunks_sent, session.elapsed_seconds,
        )

    async def wait_released(self) -> None:
        """Wait for closing handshakes started by earlier teardowns to finish."""
        transports, self._released_transports = self._released_transports, []
        for transport in transports:
            await transport.wait_closed()

    def clear_transcript(self) -> None:
        self._session.transcript.clear()

    def clear_error(self) -> None:
        session = self._session
        if session.state is not SessionState.ERROR:
            return
        self._transition_to(session, SessionState.IDLE)
        session.last_error = None

    def _check_preconditions(self) -> tuple[AudioCapturePort | None, DictationError | None]:
        if not self._credential:
            return None, CredentialMissingError()
        if self._capture_factory is None:
            return None, MicrophoneNotFoundError("Audio capture is not supported in this environment")
        capture = self._capture_factory()
        if not capture.is_available():
            return None, MicrophoneNotFoundError()
        return capture, None

    async def _begin_recording(self, session: Session, accepted: SessionAccepted) -> None:
        session.accepted = True
        session.tier = accepted.tier
        session.max_duration_seconds = accepted.max_duration_seconds
        session.elapsed_seconds = 0
        session.last_error = None
        logger.info(
            "Session accepted (tier=%s, max_duration=%ds)",
            accepted.tier.value, accepted.max_duration_seconds,
        )
        self._transition_to(session, SessionState.RECORDING)

        session.duration_timer = PeriodicTimer(
            self._duration_tick_seconds,
            partial(self._tick_duration, session),
            name=f"duration-{session.number}",
        )
        session.flush_timer = PeriodicTimer(
            self._flush_interval_seconds,
            partial(self._backup_flush, session),
            name=f"flush-{session.number}",
        )
        session.duration_timer.start()
        session.flush_timer.start()

        try:
            await session.capture.start()
        except DictationError as exc:
            await self._fail(session, exc)
            return
        if self._abandoned(session):
            return

        session.pump_task = asyncio.create_task(
            self._pump_audio(session), name=f"audio-pump-{session.number}"
        )

    async def _pump_audio(self, session: Session) -> None:
        capture = session.capture
        if capture is None:
            return
        try:
            async for chunk in capture.chunks():
                if self._abandoned(session) or session.state is not SessionState.RECORDING:
                    logger.debug("Dropping audio chunk (%d bytes), session is stopping", chunk.size)
                    break
                if chunk.size == 0:
                    logger.debug("Forwarding empty audio chunk")
                if await session.transport.send(chunk):
                    session.chunks_sent += 1
        except DictationError as exc:
            await self._fail(session, exc)

    def _tick_duration(self, session: Session) -> None:
        session.elapsed_seconds += 1
        if session.elapsed_seconds % 10 == 0:
            logger.debug(
                "Recording %ds of %ds", session.elapsed_seconds, session.max_duration_seconds,
            )

    async def _backup_flush(self, session: Session) -> None:
        if self._abandoned(session) or session.state is not SessionState.RECORDING:
            return
        try:
            session.capture.request_flush()
        except DictationError as exc:
            await self._fail(session, exc)

    async def _handle_message(self, session: Session, message: ProtocolMessage) -> None:
        if self._abandoned(session):
            logger.debug("Ignoring '%s' message for finished session #%d", message.type, session.number)
            return

        if isinstance(message, Transcript):
            session.transcript.apply(message)
            self._notify(self._on_transcript, message.text, message.is_final)
        elif isinstance(message, DurationLimitReached):
            await self._finish_at_limit(session, message.message)
        elif isinstance(message, ServiceError):
            await self._fail(session, ServiceReportedError(message.message))
        elif isinstance(message, SessionAccepted):
            await self._fail(session, ProtocolError("Session was accepted more than once"))

    async def _handle_close(self, session: Session, code: int | None, reason: str) -> None:
        if self._abandoned(session):
            return
        logger.warning("Transport closed by service (code=%s, reason=%s)", code, reason or "-")
        if code == ACCESS_DENIED_CLOSE_CODE:
            await self._fail(session, AccessDeniedError(reason or ACCESS_DENIED_MESSAGE))
        else:
            await self._fail(session, ConnectionLostError(code=code))

    async def _handle_transport_error(self, session: Session, error: DictationError) -> None:
        if self._abandoned(session):
            return
        await self._fail(session, error)

    async def _fail_or_release(self, session: Session, error: DictationError) -> None:
        # Failures caused by a stop during connecting are not reported.
        if self._abandoned(session):
            logger.debug("Session #%d ended during connect: %s", session.number, error)
            await self._teardown(session)
            return
        await self._fail(session, error)

    async def _fail(self, session: Session, error: DictationError) -> None:
        if self._abandoned(session):
            return
        logger.error("Session #%d failed: %s (%s)", session.number, error, type(error).__name__)
        await self._teardown(session)
        self._enter_error(session, str(error))
        self._notify(self._on_error, str(error))

    async def _finish_at_limit(self, session: Session, message: str) -> None:
        if self._abandoned(session):
            return
        logger.warning("Limit reached: %s", message)
        await self._teardown(session)
        self._enter_error(session, message)
        self._notify(self._on_limit_reached, message)

    def _enter_error(self, session: Session, message: str) -> None:
        self._transition_to(session, SessionState.ERROR)
        session.last_error = message

    async def _teardown(self, session: Session) -> None:
        session.stopping = True

        if session.duration_timer:
            session.duration_timer.stop()
            session.duration_timer = None
        if session.flush_timer:
            session.flush_timer.stop()
            session.flush_timer = None

        capture, session.capture = session.capture, None
        if capture:
            try:
                await capture.stop()
            except DictationError as exc:
                logger.warning("Error releasing audio device: %s", exc)

        pump, session.pump_task = session.pump_task, None
        if pump and not pump.done() and pump is not asyncio.current_task():
            pump.cancel()

        transport, session.transport = session.transport, None
        if transport:
            await transport.close(NORMAL_CLOSE_CODE, STOP_REASON)
            self._released_transports.append(transport)

        session.transcript.clear_interim()

    def _abandoned(self, session: Session) -> bool:
        return session.stopping or session is not self._session

    def _transition_to(self, session: Session, target: SessionState) -> None:
        validate_transition(session.state, target)
        logger.info("State: %s -> %s", session.state.name, target.name)
        session.state = target

    def _notify(self, callback: Callable[..., None] | None, *args: object) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Session callback raised")
