import asyncio
from dataclasses import dataclass, field

from voice_dictation.domain.state import SessionState
from voice_dictation.domain.tiers import SubscriptionTier
from voice_dictation.domain.timers import PeriodicTimer
from voice_dictation.domain.transcript import TranscriptAccumulator
from voice_dictation.ports.audio import AudioCapturePort
from voice_dictation.ports.transport import TransportPort


@dataclass(eq=False)
class Session:
    """One dictation attempt and every resource it owns.

    The controller replaces the whole value on each start and releases the
    resource fields together on teardown; nothing else holds them.
    """

    number: int = 0
    state: SessionState = SessionState.IDLE
    transcript: TranscriptAccumulator = field(default_factory=TranscriptAccumulator)
    tier: SubscriptionTier | None = None
    max_duration_seconds: int = 0
    elapsed_seconds: int = 0
    last_error: str | None = None

    capture: AudioCapturePort | None = None
    transport: TransportPort | None = None
    duration_timer: PeriodicTimer | None = None
    flush_timer: PeriodicTimer | None = None
    pump_task: asyncio.Task | None = None

    accepted: bool = False
    stopping: bool = False
    chunks_sent: int = 0

    @property
    def has_resources(self) -> bool:
        return any(
            resource is not None
            for resource in (
                self.capture,
                self.transport,
                self.duration_timer,
                self.flush_timer,
                self.pump_task,
            )
        )
