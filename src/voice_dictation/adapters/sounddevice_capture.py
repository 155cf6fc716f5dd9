import asyncio
import logging
import os
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from voice_dictation.domain.errors import (
    DeviceRuntimeError,
    DictationError,
    InactiveInputError,
    MicrophoneNotFoundError,
    MicrophonePermissionError,
    UnsupportedEncodingError,
)
from voice_dictation.ports.audio import (
    DEFAULT_ENCODING_PREFERENCE,
    AudioChunk,
    AudioEncoding,
    resolve_encodings,
)
from voice_dictation.resample import TARGET_SAMPLE_RATE, Downsampler, int16_to_float

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


def has_input_device() -> bool:
    try:
        devices = sd.query_devices()
    except sd.PortAudioError:
        return False
    return any(dev["max_input_channels"] > 0 for dev in devices)


class SounddeviceCapture:
    """Microphone capture emitting 16 kHz PCM16 chunks on a fixed cadence.

    The PortAudio stream is opened and started by ``open()`` so a dead input
    is caught before the session is accepted, but frames are discarded until
    ``start()``. Frames cross from the PortAudio thread through a janus queue
    and are joined into one chunk per cadence tick or forced flush.
    """

    def __init__(
        self,
        device: str | int | None = None,
        encodings: list[AudioEncoding] | None = None,
        chunk_interval_ms: int = 250,
        block_duration_ms: int = 20,
        queue_maxsize: int = 500,
    ) -> None:
        self._device = device
        self._encodings = encodings or resolve_encodings(DEFAULT_ENCODING_PREFERENCE)
        self._chunk_interval_ms = chunk_interval_ms
        self._block_duration_ms = block_duration_ms
        self._queue_maxsize = queue_maxsize

        self._encoding: AudioEncoding | None = None
        self._downsampler: Downsampler | None = None
        self._stream: sd.InputStream | None = None
        self._frames: janus.Queue[np.ndarray] | None = None
        self._chunks: asyncio.Queue | None = None
        self._cadence_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._recording = False
        self._stopped = False

    @property
    def encoding(self) -> AudioEncoding | None:
        return self._encoding

    def is_available(self) -> bool:
        return has_input_device()

    async def open(self) -> None:
        device = self._resolve_device()
        self._check_input_device(device)
        encoding = self._negotiate_encoding(device)

        self._encoding = encoding
        self._downsampler = Downsampler(encoding.sample_rate, TARGET_SAMPLE_RATE)
        self._loop = asyncio.get_running_loop()
        self._frames = janus.Queue(maxsize=self._queue_maxsize)
        self._chunks = asyncio.Queue()

        try:
            self._stream = sd.InputStream(
                device=device,
                samplerate=encoding.sample_rate,
                channels=1,
                dtype=encoding.dtype,
                blocksize=int(encoding.sample_rate * self._block_duration_ms / 1000),
                callback=self._on_audio,
                finished_callback=self._on_finished,
            )
            self._stream.start()
        except sd.PortAudioError as exc:
            await self.stop()
            raise MicrophonePermissionError(f"Unable to open microphone: {exc}") from exc

        if not self._stream.active:
            await self.stop()
            raise InactiveInputError("Audio input is not active")

        logger.info(
            "Audio input ready (device=%s, encoding=%s)", device, encoding.name,
        )

    async def start(self) -> None:
        if self._stream is None or self._stopped:
            raise DeviceRuntimeError("Audio input was released before recording started")
        self._downsampler.reset()
        self._recording = True
        self._cadence_task = asyncio.create_task(self._cadence_loop())
        logger.info(
            "Audio capture started (encoding=%s, chunk=%dms)",
            self._encoding.name, self._chunk_interval_ms,
        )

    def request_flush(self) -> None:
        if self._recording and not self._stopped:
            self._emit()

    async def chunks(self) -> AsyncIterator[AudioChunk]:
        if not self._chunks:
            return
        while True:
            item = await self._chunks.get()
            if item is _END_OF_STREAM or self._stopped:
                break
            if isinstance(item, DictationError):
                raise item
            yield item

    async def stop(self) -> None:
        self._stopped = True
        self._recording = False

        if self._cadence_task and not self._cadence_task.done():
            if self._cadence_task is not asyncio.current_task():
                self._cadence_task.cancel()
        self._cadence_task = None

        if self._stream:
            try:
                self._stream.abort()
                self._stream.close()
            except sd.PortAudioError:
                logger.warning("Error closing audio input stream")
            self._stream = None

        if self._frames:
            self._frames.close()
            await self._frames.wait_closed()
            self._frames = None

        if self._chunks:
            while not self._chunks.empty():
                self._chunks.get_nowait()
            self._chunks.put_nowait(_END_OF_STREAM)

    async def _cadence_loop(self) -> None:
        try:
            while self._recording:
                await asyncio.sleep(self._chunk_interval_ms / 1000)
                if not self._recording:
                    break
                self._emit()
        except asyncio.CancelledError:
            pass

    def _emit(self) -> None:
        if not self._frames or not self._chunks:
            return
        blocks: list[np.ndarray] = []
        while True:
            try:
                blocks.append(self._frames.async_q.get_nowait())
            except janus.AsyncQueueEmpty:
                break

        if blocks:
            samples = np.concatenate(blocks)
        else:
            samples = np.zeros(0, dtype=self._encoding.dtype)
        pcm = self._to_pcm16(samples)
        self._chunks.put_nowait(AudioChunk(pcm.tobytes()))

    def _to_pcm16(self, samples: np.ndarray) -> np.ndarray:
        if samples.dtype == np.int16:
            if self._encoding.sample_rate == TARGET_SAMPLE_RATE:
                return samples
            samples = int16_to_float(samples)
        return self._downsampler.process(samples)

    def _on_audio(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.warning("Audio capture status: %s", status)
        if not self._recording or self._stopped or self._frames is None:
            return
        try:
            self._frames.sync_q.put_nowait(indata[:, 0].copy())
        except janus.SyncQueueFull:
            logger.debug("Audio frame queue full, dropping block")
        except (janus.SyncQueueShutDown, RuntimeError):
            pass

    def _on_finished(self) -> None:
        if self._stopped or self._loop is None or self._chunks is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._chunks.put_nowait, DeviceRuntimeError())
        except RuntimeError:
            logger.warning("Audio input ended after the event loop closed")

    def _check_input_device(self, device: str | int | None) -> None:
        try:
            if device is None:
                info = sd.query_devices(kind="input")
            else:
                info = sd.query_devices(device)
        except (sd.PortAudioError, ValueError) as exc:
            raise MicrophoneNotFoundError() from exc
        if info["max_input_channels"] < 1:
            raise MicrophoneNotFoundError(f"Device '{info['name']}' has no audio input")

    def _negotiate_encoding(self, device: str | int | None) -> AudioEncoding:
        for encoding in self._encodings:
            try:
                sd.check_input_settings(
                    device=device,
                    channels=1,
                    dtype=encoding.dtype,
                    samplerate=encoding.sample_rate,
                )
            except (sd.PortAudioError, ValueError) as exc:
                logger.debug("Encoding %s not supported: %s", encoding.name, exc)
                continue
            return encoding
        tried = ", ".join(encoding.name for encoding in self._encodings)
        raise UnsupportedEncodingError(f"No supported audio encoding (tried {tried})")

    def _resolve_device(self) -> str | int | None:
        if self._device is None or self._device == "":
            return None
        if isinstance(self._device, int):
            return self._device
        try:
            return int(self._device)
        except ValueError:
            pass
        for i, dev in enumerate(sd.query_devices()):
            if self._device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                logger.info("Resolved device '%s' -> %d (%s)", self._device, i, dev["name"])
                return i
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("Device '%s' not in PortAudio, set PIPEWIRE_NODE for PipeWire routing", self._device)
        return None
