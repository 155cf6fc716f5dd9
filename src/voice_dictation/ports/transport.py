from collections.abc import Awaitable, Callable
from typing import Protocol

from voice_dictation.domain.errors import DictationError
from voice_dictation.domain.messages import ProtocolMessage, SessionAccepted
from voice_dictation.ports.audio import AudioChunk

MessageHandler = Callable[[ProtocolMessage], Awaitable[None]]
CloseHandler = Callable[[int | None, str], Awaitable[None]]
ErrorHandler = Callable[[DictationError], Awaitable[None]]


class TransportPort(Protocol):
    @property
    def is_ready(self) -> bool: ...
    def on_message(self, handler: MessageHandler) -> None: ...
    def on_close(self, handler: CloseHandler) -> None: ...
    def on_error(self, handler: ErrorHandler) -> None: ...
    async def open(self, credential: str) -> SessionAccepted: ...
    async def send(self, chunk: AudioChunk) -> bool: ...
    async def close(self, code: int = 1000, reason: str = "") -> None: ...
    async def wait_closed(self) -> None: ...
