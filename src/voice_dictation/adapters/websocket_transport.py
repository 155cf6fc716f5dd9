import asyncio
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException
from websockets.protocol import State

from voice_dictation.domain.errors import (
    ACCESS_DENIED_CLOSE_CODE,
    ACCESS_DENIED_MESSAGE,
    NORMAL_CLOSE_CODE,
    AccessDeniedError,
    HandshakeError,
    ProtocolError,
)
from voice_dictation.domain.messages import (
    ProtocolMessage,
    SessionAccepted,
    expect_session_accepted,
    parse_message,
)
from voice_dictation.ports.audio import AudioChunk
from voice_dictation.ports.transport import CloseHandler, ErrorHandler, MessageHandler

logger = logging.getLogger(__name__)

STREAM_PATH = "/v1/transcribe/stream"
PROTOCOL_ERROR_CLOSE_CODE = 1002

_SCHEMES = {"https": "wss", "http": "ws", "wss": "wss", "ws": "ws"}


def build_stream_url(api_base: str, token: str, path: str = STREAM_PATH) -> str:
    parts = urlsplit(api_base.strip().rstrip("/"))
    scheme = _SCHEMES.get(parts.scheme)
    if scheme is None or not parts.netloc:
        raise ValueError(f"Unsupported API base URL: {api_base!r}")
    query = [(key, value) for key, value in parse_qsl(parts.query) if key != "token"]
    query.append(("token", token))
    return urlunsplit((scheme, parts.netloc, parts.path + path, urlencode(query), ""))


class WebSocketTransport:
    """One duplex connection to the transcription service for one session.

    Audio goes out as binary frames. JSON frames come in and are dispatched to
    the registered handlers from a single reader task, in arrival order.
    """

    def __init__(
        self,
        api_base: str,
        stream_path: str = STREAM_PATH,
        handshake_timeout: float = 10.0,
        close_timeout: float = 2.0,
        connect_factory=connect,
    ) -> None:
        self._api_base = api_base
        self._stream_path = stream_path
        self._handshake_timeout = handshake_timeout
        self._close_timeout = close_timeout
        self._connect = connect_factory

        self._connection: ClientConnection | None = None
        self._reader_task: asyncio.Task | None = None
        self._closer_task: asyncio.Task | None = None
        self._message_handler: MessageHandler | None = None
        self._close_handler: CloseHandler | None = None
        self._error_handler: ErrorHandler | None = None
        self._ready = False
        self._closing = False

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closing

    def on_message(self, handler: MessageHandler) -> None:
        self._message_handler = handler

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handler = handler

    def on_error(self, handler: ErrorHandler) -> None:
        self._error_handler = handler

    async def open(self, credential: str) -> SessionAccepted:
        if self._connection is not None or self._closing:
            raise HandshakeError("Transport cannot be reopened")

        url = build_stream_url(self._api_base, credential, self._stream_path)
        logger.info("Connecting to transcription service at %s%s", self._api_base, self._stream_path)
        try:
            connection = await self._connect(
                url,
                open_timeout=self._handshake_timeout,
                close_timeout=self._close_timeout,
            )
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise AccessDeniedError() from exc
            raise HandshakeError(
                f"Transcription service rejected the connection (HTTP {status})"
            ) from exc
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise HandshakeError("Failed to connect to transcription service") from exc

        if self._closing:
            await connection.close(NORMAL_CLOSE_CODE, "Client stopped recording")
            raise HandshakeError("Transport closed during handshake")
        self._connection = connection
        logger.info("Connected, waiting for session acceptance")

        try:
            raw = await asyncio.wait_for(connection.recv(), timeout=self._handshake_timeout)
        except TimeoutError as exc:
            await self._discard(connection, NORMAL_CLOSE_CODE, "Handshake timeout")
            raise HandshakeError(
                "Timed out waiting for the transcription service to accept the session"
            ) from exc
        except ConnectionClosed as exc:
            self._connection = None
            code, reason = _close_details(exc)
            if code == ACCESS_DENIED_CLOSE_CODE:
                raise AccessDeniedError(reason or ACCESS_DENIED_MESSAGE) from exc
            if self._closing:
                raise HandshakeError("Transport closed during handshake") from exc
            raise HandshakeError(
                f"Connection closed before the session was accepted (code={code})"
            ) from exc

        try:
            accepted = expect_session_accepted(parse_message(raw))
        except ProtocolError:
            await self._discard(connection, PROTOCOL_ERROR_CLOSE_CODE, "Expected connection_established")
            raise

        self._ready = True
        self._reader_task = asyncio.create_task(self._read_loop(connection))
        return accepted

    async def send(self, chunk: AudioChunk) -> bool:
        connection = self._connection
        if not self.is_ready or connection is None:
            logger.debug("Dropping audio chunk (%d bytes), transport not ready", chunk.size)
            return False
        try:
            await connection.send(chunk.data)
        except ConnectionClosed:
            logger.warning("Dropping audio chunk (%d bytes), connection closed", chunk.size)
            return False
        logger.debug("Sent audio chunk (%d bytes)", chunk.size)
        return True

    async def close(self, code: int = NORMAL_CLOSE_CODE, reason: str = "") -> None:
        """Stop the session without waiting on the network.

        The close notice and closing handshake run in a background task that
        gives up after ``close_timeout`` and aborts the socket.
        """
        self._closing = True
        self._ready = False

        reader, self._reader_task = self._reader_task, None
        if reader and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()

        connection, self._connection = self._connection, None
        if connection is None:
            return
        self._closer_task = asyncio.create_task(self._finish_close(connection, code, reason))

    async def wait_closed(self) -> None:
        if self._closer_task:
            await asyncio.shield(self._closer_task)

    async def _finish_close(self, connection: ClientConnection, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(self._close_handshake(connection, code, reason), self._close_timeout)
        except TimeoutError:
            logger.warning("Transcription service did not finish closing, aborting connection")
            connection.transport.abort()
            return
        except asyncio.CancelledError:
            connection.transport.abort()
            raise
        logger.info("Transcription stream closed (code=%d)", code)

    async def _close_handshake(self, connection: ClientConnection, code: int, reason: str) -> None:
        if connection.state is State.OPEN:
            try:
                await connection.send("close")
            except ConnectionClosed:
                logger.debug("Connection closed before the close notice was sent")
        await connection.close(code, reason)

    async def _read_loop(self, connection: ClientConnection) -> None:
        try:
            async for raw in connection:
                try:
                    message = parse_message(raw)
                except ProtocolError as exc:
                    logger.warning("Invalid message from transcription service: %s", exc)
                    await self._dispatch_error(exc)
                    continue
                await self._dispatch_message(message)
        except ConnectionClosed:
            pass

        self._ready = False
        if self._closing:
            return
        code, reason = connection.close_code, connection.close_reason or ""
        logger.info("Transcription service closed the stream (code=%s)", code)
        self._connection = None
        if self._close_handler:
            await self._close_handler(code, reason)

    async def _dispatch_message(self, message: ProtocolMessage) -> None:
        logger.debug("Received '%s' message", message.type)
        if self._message_handler:
            await self._message_handler(message)

    async def _dispatch_error(self, error: ProtocolError) -> None:
        if self._error_handler:
            await self._error_handler(error)

    async def _discard(self, connection: ClientConnection, code: int, reason: str) -> None:
        self._connection = None
        await connection.close(code, reason)


def _close_details(exc: ConnectionClosed) -> tuple[int | None, str]:
    if exc.rcvd is not None:
        return exc.rcvd.code, exc.rcvd.reason
    return None, ""
