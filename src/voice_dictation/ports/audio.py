from dataclasses import dataclass
from typing import Protocol, AsyncIterator


@dataclass(frozen=True)
class AudioChunk:
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AudioEncoding:
    name: str
    dtype: str
    sample_rate: int


ENCODINGS: dict[str, AudioEncoding] = {
    "pcm16-16k": AudioEncoding(name="pcm16-16k", dtype="int16", sample_rate=16000),
    "float32-16k": AudioEncoding(name="float32-16k", dtype="float32", sample_rate=16000),
    "float32-48k": AudioEncoding(name="float32-48k", dtype="float32", sample_rate=48000),
    "float32-44k": AudioEncoding(name="float32-44k", dtype="float32", sample_rate=44100),
}

DEFAULT_ENCODING_PREFERENCE = ["pcm16-16k", "float32-16k", "float32-48k", "float32-44k"]


def resolve_encodings(names: list[str]) -> list[AudioEncoding]:
    unknown = [name for name in names if name not in ENCODINGS]
    if unknown:
        raise ValueError(f"Unknown capture encodings: {', '.join(unknown)}")
    return [ENCODINGS[name] for name in names]


class AudioCapturePort(Protocol):
    @property
    def encoding(self) -> AudioEncoding | None: ...
    def is_available(self) -> bool: ...
    async def open(self) -> None: ...
    async def start(self) -> None: ...
    def request_flush(self) -> None: ...
    def chunks(self) -> AsyncIterator[AudioChunk]: ...
    async def stop(self) -> None: ...
