import asyncio
import base64
import hashlib
import json
from collections.abc import AsyncIterator

import numpy as np
import pytest

from voice_dictation.domain.errors import DictationError, HandshakeError
from voice_dictation.domain.messages import ProtocolMessage, SessionAccepted, expect_session_accepted
from voice_dictation.domain.tiers import SubscriptionTier
from voice_dictation.ports.audio import ENCODINGS, AudioChunk, AudioEncoding


SAMPLE_RATE = 16000
CHUNK_DURATION_MS = 250


def generate_silence(duration_ms: int = CHUNK_DURATION_MS, sample_rate: int = SAMPLE_RATE) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    return np.zeros(num_samples, dtype=np.int16).tobytes()


def generate_sine_wave(
    frequency: float = 440.0,
    duration_ms: int = CHUNK_DURATION_MS,
    amplitude: float = 0.8,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    signal = np.sin(2 * np.pi * frequency * t) * amplitude
    return (signal * 32767).astype(np.int16).tobytes()


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def starter_accept(max_duration_seconds: int = 300) -> SessionAccepted:
    return SessionAccepted(tier=SubscriptionTier.STARTER, max_duration_seconds=max_duration_seconds)


class FakeAudioCapture:
    """Capture double with no cadence of its own; tests push chunks with emit()."""

    def __init__(
        self,
        available: bool = True,
        open_error: DictationError | None = None,
        start_error: DictationError | None = None,
        flush_payload: bytes = b"",
        log: list[str] | None = None,
    ) -> None:
        self._available = available
        self._open_error = open_error
        self._start_error = start_error
        self._flush_payload = flush_payload
        self._log = log if log is not None else []
        self._queue: asyncio.Queue | None = None
        self.opened = False
        self.started = False
        self.stopped = False
        self.flush_requests = 0

    @property
    def encoding(self) -> AudioEncoding | None:
        return ENCODINGS["pcm16-16k"] if self.opened else None

    def is_available(self) -> bool:
        return self._available

    async def open(self) -> None:
        self._log.append("capture.open")
        if self._open_error:
            raise self._open_error
        self.opened = True
        self._queue = asyncio.Queue()

    async def start(self) -> None:
        self._log.append("capture.start")
        if self._start_error:
            raise self._start_error
        self.started = True

    def request_flush(self) -> None:
        self.flush_requests += 1
        self.emit(self._flush_payload)

    def emit(self, data: bytes) -> None:
        if self.stopped or not self.started:
            return
        self._queue.put_nowait(AudioChunk(data))

    def fail(self, error: DictationError) -> None:
        self._queue.put_nowait(error)

    async def chunks(self) -> AsyncIterator[AudioChunk]:
        if self._queue is None:
            return
        while True:
            item = await self._queue.get()
            if item is None or self.stopped:
                break
            if isinstance(item, Exception):
                raise item
            yield item

    async def stop(self) -> None:
        self._log.append("capture.stop")
        self.stopped = True
        self.started = False
        if self._queue:
            self._queue.put_nowait(None)


class FakeTransport:
    def __init__(
        self,
        first_message: ProtocolMessage | None = None,
        open_error: DictationError | None = None,
        gate: asyncio.Event | None = None,
        log: list[str] | None = None,
    ) -> None:
        self._first_message = first_message or starter_accept()
        self._open_error = open_error
        self._gate = gate
        self._log = log if log is not None else []
        self._message_handler = None
        self._close_handler = None
        self._error_handler = None
        self._ready = False
        self.credential: str | None = None
        self.closed = False
        self.sent: list[AudioChunk] = []
        self.dropped: list[AudioChunk] = []
        self.close_calls: list[tuple[int, str]] = []
        self.waited_closed = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def on_message(self, handler) -> None:
        self._message_handler = handler

    def on_close(self, handler) -> None:
        self._close_handler = handler

    def on_error(self, handler) -> None:
        self._error_handler = handler

    async def open(self, credential: str) -> SessionAccepted:
        self._log.append("transport.open")
        self.credential = credential
        if self._gate:
            await self._gate.wait()
        if self.closed:
            raise HandshakeError("Transport closed during handshake")
        if self._open_error:
            raise self._open_error
        accepted = expect_session_accepted(self._first_message)
        self._ready = True
        self._log.append("transport.accepted")
        return accepted

    async def send(self, chunk: AudioChunk) -> bool:
        if not self._ready:
            self.dropped.append(chunk)
            return False
        self._log.append("transport.send")
        self.sent.append(chunk)
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self._ready = False
        self.close_calls.append((code, reason))

    async def wait_closed(self) -> None:
        self.waited_closed = True

    async def deliver(self, message: ProtocolMessage) -> None:
        await self._message_handler(message)

    async def deliver_error(self, error: DictationError) -> None:
        await self._error_handler(error)

    async def drop_connection(self, code: int | None, reason: str = "") -> None:
        self._ready = False
        await self._close_handler(code, reason)


WEBSOCKET_GUID = b"258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


def server_text_frame(text: str) -> bytes:
    payload = text.encode("utf-8")
    if len(payload) < 126:
        header = bytes([0x81, len(payload)])
    elif len(payload) < 65536:
        header = bytes([0x81, 126]) + len(payload).to_bytes(2, "big")
    else:
        header = bytes([0x81, 127]) + len(payload).to_bytes(8, "big")
    return header + payload


def accept_frame(tier: str = "premium", max_duration_seconds: int = 300) -> str:
    return json.dumps({
        "type": "connection_established",
        "tier": tier,
        "max_duration_seconds": max_duration_seconds,
    })


class StalledService:
    """Raw socket peer that upgrades, sends its frames, then goes quiet.

    With ``keep_reading=False`` it never reads again, so the client's socket
    buffer fills. With ``keep_reading=True`` it reads and discards everything
    but never answers a close frame.
    """

    def __init__(self, frames: list[str], keep_reading: bool = False) -> None:
        self._frames = frames
        self._keep_reading = keep_reading
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []
        self.upgraded = asyncio.Event()
        self._released = asyncio.Event()
        self.port = 0

    async def __aenter__(self) -> "StalledService":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, *exc) -> None:
        self._released.set()
        for writer in self._writers:
            writer.transport.abort()
        self._server.close()
        await self._server.wait_closed()

    @property
    def api_base(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        request = await reader.readuntil(b"\r\n\r\n")
        key = b""
        for line in request.split(b"\r\n"):
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"sec-websocket-key":
                key = value.strip()
        accept = base64.b64encode(hashlib.sha1(key + WEBSOCKET_GUID).digest())
        writer.write(
            b"HTTP/1.1 101 Switching Protocols\r\n"
            b"Upgrade: websocket\r\n"
            b"Connection: Upgrade\r\n"
            b"Sec-WebSocket-Accept: " + accept + b"\r\n\r\n"
        )
        for frame in self._frames:
            writer.write(server_text_frame(frame))
        await writer.drain()
        self.upgraded.set()

        if self._keep_reading:
            while await reader.read(65536):
                pass
        else:
            await self._released.wait()


class CallbackRecorder:
    def __init__(self) -> None:
        self.transcripts: list[tuple[str, bool]] = []
        self.errors: list[str] = []
        self.limits: list[str] = []

    def on_transcript(self, text: str, is_final: bool) -> None:
        self.transcripts.append((text, is_final))

    def on_error(self, message: str) -> None:
        self.errors.append(message)

    def on_limit_reached(self, message: str) -> None:
        self.limits.append(message)


@pytest.fixture
def call_log():
    return []


@pytest.fixture
def fake_capture(call_log):
    return FakeAudioCapture(log=call_log)


@pytest.fixture
def fake_transport(call_log):
    return FakeTransport(log=call_log)


@pytest.fixture
def callbacks():
    return CallbackRecorder()
