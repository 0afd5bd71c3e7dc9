"""WebSocket sessions used by test subscriptions."""

from __future__ import annotations

import asyncio
import contextlib
import threading
from typing import Any, Callable, Protocol, Sequence
from urllib.parse import urlsplit

import websocket  # websocket-client
from asgiref.testing import ApplicationCommunicator

from graphql_testkit.exceptions import TransportError
from graphql_testkit.logging import get_logger

logger = get_logger("subscription.transport")

MessageCallback = Callable[[str], None]
CloseCallback = Callable[[], None]

DEFAULT_CONNECT_TIMEOUT = 60.0


class SubscriptionTransport(Protocol):
    """A text-frame WebSocket session delivering frames on its own thread."""

    uri: str

    def connect(self, on_message: MessageCallback, on_close: CloseCallback) -> None:
        """
        Open the session and start delivering frames.

        ``on_close`` must be called exactly once after a successful connect,
        whatever ends the session.

        Raises:
            TransportError: If the session cannot be opened.
        """

    def send(self, text: str) -> None:
        """Send one text frame; raise ``TransportError`` if the session is closed."""

    def close(self) -> None:
        """Close the session. Calling it again is a no-op."""


TransportFactory = Callable[[str, Sequence[str]], SubscriptionTransport]


class _CloseNotifier:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callback: CloseCallback | None = None
        self._fired = False

    def bind(self, callback: CloseCallback) -> None:
        with self._lock:
            self._callback = callback

    def fire(self) -> None:
        with self._lock:
            if self._fired or self._callback is None:
                return
            self._fired = True
            callback = self._callback
        callback()


class WebSocketClientTransport:
    """
    Real network session backed by ``websocket.WebSocketApp``.

    ``run_forever`` runs on a daemon thread; frames and the close notification
    are delivered from that thread.
    """

    def __init__(
        self,
        uri: str,
        subprotocols: Sequence[str] = (),
        *,
        headers: Sequence[str] | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.uri = uri
        self.subprotocols = list(subprotocols)
        self.headers = list(headers or [])
        self.connect_timeout = connect_timeout
        self._app: websocket.WebSocketApp | None = None
        self._thread: threading.Thread | None = None
        self._opened = threading.Event()
        self._connected = False
        self._error: BaseException | None = None
        self._closer = _CloseNotifier()

    def connect(self, on_message: MessageCallback, on_close: CloseCallback) -> None:
        if self._app is not None:
            raise TransportError(self.uri, "session already connected")
        self._closer.bind(on_close)
        self._app = websocket.WebSocketApp(
            self.uri,
            header=self.headers,
            subprotocols=self.subprotocols,
            on_open=lambda _ws: self._handle_open(),
            on_message=lambda _ws, message: on_message(message),
            on_error=lambda _ws, error: self._handle_error(error),
            on_close=lambda _ws, code, reason: self._handle_close(code, reason),
        )
        self._thread = threading.Thread(
            target=self._run, name=f"graphql-testkit-ws[{self.uri}]", daemon=True
        )
        logger.debug("connecting web socket", context={"uri": self.uri})
        self._thread.start()
        if not self._opened.wait(self.connect_timeout):
            self._app.close()
            raise TransportError(self.uri, f"not connected within {self.connect_timeout}s")
        if not self._connected:
            reason = repr(self._error) if self._error is not None else "handshake failed"
            raise TransportError(self.uri, reason)

    def _run(self) -> None:
        assert self._app is not None
        try:
            self._app.run_forever()
        finally:
            # Unblock connect() when the handshake failed before on_open.
            self._opened.set()

    def _handle_open(self) -> None:
        logger.debug("connection established", context={"uri": self.uri})
        self._connected = True
        self._opened.set()

    def _handle_error(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
        logger.debug(
            "web socket error", context={"uri": self.uri, "error": repr(error)}
        )

    def _handle_close(self, code: int | None, reason: str | None) -> None:
        logger.debug(
            "web socket closed",
            context={"uri": self.uri, "code": code, "reason": reason},
        )
        if self._connected:
            self._closer.fire()

    def send(self, text: str) -> None:
        if self._app is None:
            raise TransportError(self.uri, "session not connected")
        try:
            self._app.send(text)
        except websocket.WebSocketException as error:
            raise TransportError(self.uri, repr(error)) from error

    def close(self) -> None:
        if self._app is None:
            return
        self._app.close()


class ASGIWebSocketTransport:
    """
    In-process session driving an ASGI application through ``ApplicationCommunicator``.

    The communicator lives on a private event loop thread so that the test
    thread can block in the driver's poll loops while the application runs.
    """

    def __init__(
        self,
        application: Any,
        uri: str,
        subprotocols: Sequence[str] = (),
        *,
        headers: Sequence[tuple[bytes, bytes]] | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.application = application
        self.uri = uri
        self.subprotocols = list(subprotocols)
        self.headers = list(headers or [])
        self.connect_timeout = connect_timeout
        self.accepted_subprotocol: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._communicator: ApplicationCommunicator | None = None
        self._reader: asyncio.Future[None] | None = None
        self._on_message: MessageCallback | None = None
        self._closer = _CloseNotifier()
        self._closed = False

    def _scope(self) -> dict[str, Any]:
        parts = urlsplit(self.uri)
        host = parts.hostname or "testserver"
        port = parts.port or 80
        return {
            "type": "websocket",
            "path": parts.path or "/",
            "raw_path": (parts.path or "/").encode("latin1"),
            "headers": self.headers,
            "query_string": parts.query.encode("latin1"),
            "client": ("testclient", 50000),
            "server": (host, port),
            "subprotocols": self.subprotocols,
        }

    def connect(self, on_message: MessageCallback, on_close: CloseCallback) -> None:
        if self._loop is not None:
            raise TransportError(self.uri, "session already connected")
        self._on_message = on_message
        self._closer.bind(on_close)
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name=f"graphql-testkit-asgi[{self.uri}]",
            daemon=True,
        )
        self._thread.start()
        future = asyncio.run_coroutine_threadsafe(self._open(), self._loop)
        try:
            future.result(self.connect_timeout)
        except TransportError:
            self._stop_loop()
            raise
        except Exception as error:
            self._stop_loop()
            raise TransportError(self.uri, repr(error)) from error

    async def _open(self) -> None:
        self._communicator = ApplicationCommunicator(self.application, self._scope())
        await self._communicator.send_input({"type": "websocket.connect"})
        reply = await self._next_output(self.connect_timeout)
        if reply is None:
            if self._communicator.future.done():
                # Surfaces the application's exception, if any.
                self._communicator.future.result()
                raise TransportError(self.uri, "application exited before accepting")
            raise TransportError(self.uri, f"not accepted within {self.connect_timeout}s")
        if reply.get("type") != "websocket.accept":
            raise TransportError(self.uri, f"connection rejected with {reply!r}")
        self.accepted_subprotocol = reply.get("subprotocol")
        logger.debug(
            "connection established",
            context={"uri": self.uri, "subprotocol": self.accepted_subprotocol},
        )
        self._reader = asyncio.ensure_future(self._read())

    async def _read(self) -> None:
        assert self._communicator is not None
        communicator = self._communicator
        try:
            while True:
                message = await self._next_output()
                if message is None:
                    break
                if message["type"] == "websocket.send":
                    self._deliver(message)
                elif message["type"] == "websocket.close":
                    logger.debug(
                        "application closed the connection",
                        context={"uri": self.uri, "code": message.get("code")},
                    )
                    await communicator.send_input(
                        {"type": "websocket.disconnect", "code": message.get("code", 1000)}
                    )
                    break
        finally:
            self._closer.fire()

    async def _next_output(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Return the next message sent by the application, or ``None`` once it has finished."""
        assert self._communicator is not None
        communicator = self._communicator
        queue = communicator.output_queue
        if queue.empty() and not communicator.future.done():
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {getter, communicator.future},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if getter in done:
                return getter.result()
            getter.cancel()
        # Messages queued right before the application returned are still delivered.
        if not queue.empty():
            return queue.get_nowait()
        return None

    def _deliver(self, message: dict[str, Any]) -> None:
        assert self._on_message is not None
        text = message.get("text")
        if text is None and message.get("bytes") is not None:
            text = message["bytes"].decode("utf-8")
        if text is not None:
            self._on_message(text)

    def send(self, text: str) -> None:
        if self._loop is None or self._communicator is None or self._closed:
            raise TransportError(self.uri, "session not connected")
        future = asyncio.run_coroutine_threadsafe(
            self._communicator.send_input({"type": "websocket.receive", "text": text}),
            self._loop,
        )
        try:
            future.result(self.connect_timeout)
        except Exception as error:
            raise TransportError(self.uri, repr(error)) from error

    def close(self) -> None:
        if self._loop is None or self._closed:
            return
        self._closed = True
        future = asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop)
        try:
            future.result(self.connect_timeout)
        finally:
            self._stop_loop()

    async def _shutdown(self) -> None:
        communicator = self._communicator
        if communicator is not None and not communicator.future.done():
            await communicator.send_input({"type": "websocket.disconnect", "code": 1000})
            with contextlib.suppress(asyncio.TimeoutError, asyncio.CancelledError):
                await communicator.wait(timeout=self.connect_timeout)
        if self._reader is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        else:
            self._closer.fire()

    def _stop_loop(self) -> None:
        loop, thread = self._loop, self._thread
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.connect_timeout)
            if not loop.is_running():
                loop.close()


def websocket_client_transport_factory(
    *,
    headers: Sequence[str] | None = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> TransportFactory:
    """Build a factory for real network sessions with extra handshake headers."""

    def factory(uri: str, subprotocols: Sequence[str]) -> SubscriptionTransport:
        return WebSocketClientTransport(
            uri, subprotocols, headers=headers, connect_timeout=connect_timeout
        )

    return factory


def asgi_transport_factory(
    application: Any,
    *,
    headers: Sequence[tuple[bytes, bytes]] | None = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> TransportFactory:
    """Build a factory that connects subscriptions to ``application`` in-process."""

    def factory(uri: str, subprotocols: Sequence[str]) -> SubscriptionTransport:
        return ASGIWebSocketTransport(
            application,
            uri,
            subprotocols,
            headers=headers,
            connect_timeout=connect_timeout,
        )

    return factory
