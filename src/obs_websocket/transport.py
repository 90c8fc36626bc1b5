"""Client-side transport: connection ownership and request correlation.

One socket carries everything: responses to our requests (tagged with the
request's `message-id`) and unsolicited events (no `message-id`). A single
background reader demultiplexes each inbound message:
- Responses resolve the pending future registered for their message id
- Events are handed to the event handler (normally the EventDispatcher)

Architecture:
- ClientTransport is the PROTOCOL (interface) the client talks to
- BaseClientTransport implements state, correlation and the reader loop
- Subclasses only implement wire I/O (_do_connect, _do_send, ...)
- MockClientTransport is an in-memory server for tests
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import websockets
from websockets.exceptions import ConnectionClosed

from .errors import ConnectionClosedError, ObsWebSocketError, RequestRejectedError
from .protocol.commands import MESSAGE_ID_KEY, Command, RequestType
from .protocol.messages import STATUS_ERROR, STATUS_OK, ObsEvent, Response, parse_message

logger = logging.getLogger(__name__)

DEFAULT_URL = "ws://localhost:4444"

# RFC 6455 "going away"
CLOSE_GOING_AWAY = 1001

EventHandler = Callable[[ObsEvent], None]


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"  # Remote side ended the stream


@dataclass
class ClientTransportConfig:
    """Configuration for client transports."""

    url: str = DEFAULT_URL
    password: str | None = None

    # Seconds to wait for a response; None waits until the socket closes
    timeout: float | None = None

    # Keep-alive and close handshake
    ping_interval: float | None = 20.0
    ping_timeout: float | None = 20.0
    close_timeout: float = 10.0

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientTransportConfig:
        """Build a config from OBS_WEBSOCKET_* environment variables.

        Explicit keyword overrides that are not None take precedence.
        """
        timeout_raw = os.environ.get("OBS_WEBSOCKET_TIMEOUT")
        values: dict[str, Any] = {
            "url": os.environ.get("OBS_WEBSOCKET_URL", DEFAULT_URL),
            "password": os.environ.get("OBS_WEBSOCKET_PASSWORD") or None,
            "timeout": float(timeout_raw) if timeout_raw else None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class PendingRequest:
    """A request waiting for the response carrying its message id."""

    message_id: str
    request_type: str
    future: asyncio.Future[Response]


@runtime_checkable
class ClientTransport(Protocol):
    """Protocol for client transports.

    All transports must implement:
    - connect/disconnect: Lifecycle management
    - issue/await_response: Send a request and wait for its response
    - on_event: Route uncorrelated events to a handler
    """

    @property
    def config(self) -> ClientTransportConfig: ...

    @property
    def state(self) -> TransportState: ...

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    def on_event(self, handler: EventHandler | None) -> None: ...

    async def issue(
        self, request_type: str | RequestType, args: dict[str, Any] | None = None
    ) -> str: ...

    async def await_response(self, message_id: str, timeout: float | None = None) -> Response: ...

    async def command(
        self,
        request_type: str | RequestType,
        args: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Response: ...


class BaseClientTransport(ABC):
    """Base class for client transports with common functionality.

    Provides:
    - State management
    - Message id allocation (never reused, never reset)
    - Pending request table and response correlation
    - Background reader task management
    """

    def __init__(self, config: ClientTransportConfig):
        self.config = config
        self._state = TransportState.DISCONNECTED
        self._message_id = 0
        self._pending: dict[str, PendingRequest] = {}
        self._event_handler: EventHandler | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._state == TransportState.CONNECTED

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return sum(1 for p in self._pending.values() if not p.future.done())

    def on_event(self, handler: EventHandler | None) -> None:
        """Set the handler that receives uncorrelated events."""
        self._event_handler = handler

    async def connect(self) -> None:
        """Establish connection."""
        async with self._lock:
            if self._state == TransportState.CONNECTED:
                return

            self._state = TransportState.CONNECTING
            try:
                await self._do_connect()
                self._state = TransportState.CONNECTED

                # Start background reader
                self._reader_task = asyncio.create_task(self._read_loop())

                logger.info(f"{self.__class__.__name__} connected to {self.config.url}")
            except Exception as e:
                self._state = TransportState.DISCONNECTED
                raise ConnectionError(f"Failed to connect to {self.config.url}: {e}") from e

    async def disconnect(self) -> None:
        """Close the connection."""
        async with self._lock:
            if self._state == TransportState.DISCONNECTED:
                return

            self._state = TransportState.CLOSED

            # Cancel reader task
            if self._reader_task:
                self._reader_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._reader_task
                self._reader_task = None

            self._fail_pending("Connection closed by client")

            try:
                await self._do_disconnect()
            finally:
                self._state = TransportState.DISCONNECTED
            logger.info(f"{self.__class__.__name__} disconnected")

    async def issue(
        self, request_type: str | RequestType, args: dict[str, Any] | None = None
    ) -> str:
        """Send a request and return its message id.

        The pending entry is registered before the write, so the response
        is captured even if it arrives before await_response() is called.

        Raises:
            ConnectionClosedError: If not connected or the write fails
        """
        if not self.is_connected:
            raise ConnectionClosedError("Connection is closed")

        loop = asyncio.get_running_loop()

        async with self._send_lock:
            if not self.is_connected:
                raise ConnectionClosedError("Connection is closed")

            self._message_id += 1
            message_id = str(self._message_id)
            command = Command.create(request_type, message_id, args)

            self._pending[message_id] = PendingRequest(
                message_id=message_id,
                request_type=command.request_type,
                future=loop.create_future(),
            )

            try:
                await self._do_send(command)
            except ConnectionClosedError:
                self._pending.pop(message_id, None)
                raise
            except Exception as e:
                self._pending.pop(message_id, None)
                raise ConnectionClosedError(
                    f"Failed to send {command.request_type} request: {e}"
                ) from e

        logger.debug(f"Sent {command.request_type} (message-id={message_id})")
        return message_id

    async def await_response(self, message_id: str, timeout: float | None = None) -> Response:
        """Wait for the response carrying `message_id`.

        Args:
            message_id: Id returned by issue()
            timeout: Seconds to wait. None falls back to config.timeout, so
                a wait is unbounded only when config.timeout is also None.

        Raises:
            RequestRejectedError: If the server answered with status "error"
            ConnectionClosedError: If the stream ended before the response
            TimeoutError: If the timeout expired; the request is abandoned
        """
        pending = self._pending.get(message_id)
        if pending is None:
            raise ObsWebSocketError(f"No pending request with message id {message_id}")

        if timeout is None:
            timeout = self.config.timeout

        try:
            if timeout is None:
                return await pending.future
            return await asyncio.wait_for(pending.future, timeout=timeout)
        except TimeoutError:
            raise TimeoutError(
                f"{pending.request_type} request timed out after {timeout}s"
            ) from None
        finally:
            self._pending.pop(message_id, None)

    async def command(
        self,
        request_type: str | RequestType,
        args: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send a request and wait for its response."""
        message_id = await self.issue(request_type, args)
        return await self.await_response(message_id, timeout=timeout)

    async def _read_loop(self) -> None:
        """Background task reading messages and routing them."""
        try:
            async for raw in self._receive_messages():
                # One bad frame must not end the reader
                try:
                    self._route(raw)
                except Exception:
                    logger.exception("Error routing inbound message")
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.error(f"Read loop error: {e}")

        self._handle_stream_end()

    def _route(self, raw: str | bytes) -> None:
        message = parse_message(raw)
        if message is None:
            return

        if isinstance(message, Response):
            self._resolve(message)
            return

        if self._event_handler is None:
            logger.debug(f"No event handler, dropping {message.update_type}")
            return

        try:
            self._event_handler(message)
        except Exception:
            logger.exception(f"Error handing off event {message.update_type}")

    def _resolve(self, response: Response) -> None:
        pending = self._pending.get(response.message_id)
        if pending is None or pending.future.done():
            # Abandoned (timed out / cancelled) or not ours
            logger.debug(f"Dropping unmatched response (message-id={response.message_id})")
            return

        if response.ok:
            pending.future.set_result(response)
        else:
            pending.future.set_exception(
                RequestRejectedError(pending.request_type, response.error, response.raw)
            )

    def _handle_stream_end(self) -> None:
        """The remote side ended the stream."""
        if self._state != TransportState.CONNECTED:
            return
        self._state = TransportState.CLOSED
        self._fail_pending("Connection closed before a response was received")
        logger.info(f"{self.__class__.__name__} connection closed by server")

    def _fail_pending(self, reason: str) -> None:
        for pending in self._pending.values():
            if not pending.future.done():
                pending.future.set_exception(
                    ConnectionClosedError(f"{reason} ({pending.request_type})")
                )

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_connect(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_disconnect(self) -> None:
        """Implementation-specific disconnection logic."""
        ...

    @abstractmethod
    async def _do_send(self, command: Command) -> None:
        """Implementation-specific send logic."""
        ...

    @abstractmethod
    def _receive_messages(self) -> AsyncIterator[str | bytes]:
        """Implementation-specific receive logic. Must be an async generator."""
        ...

    async def __aenter__(self) -> BaseClientTransport:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()


class WebSocketClientTransport(BaseClientTransport):
    """Transport over a WebSocket to the OBS websocket plugin.

    Wire format:
    - Requests: one JSON object per text frame
    - Responses and events: one JSON object per text frame
    """

    def __init__(self, config: ClientTransportConfig | None = None):
        super().__init__(config or ClientTransportConfig())
        self._ws: Any = None  # websockets client connection

    async def _do_connect(self) -> None:
        """Open the WebSocket."""
        self._ws = await websockets.connect(
            self.config.url,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
            close_timeout=self.config.close_timeout,
        )

    async def _do_disconnect(self) -> None:
        """Close the WebSocket with a "going away" close frame."""
        if self._ws:
            try:
                await self._ws.close(code=CLOSE_GOING_AWAY)
            finally:
                self._ws = None

    async def _do_send(self, command: Command) -> None:
        """Send request as one text frame."""
        if not self._ws:
            raise ConnectionClosedError("WebSocket not connected")

        try:
            await self._ws.send(command.to_json())
        except ConnectionClosed as e:
            raise ConnectionClosedError(
                f"WebSocket closed while sending {command.request_type}: {e}"
            ) from e

    async def _receive_messages(self) -> AsyncIterator[str | bytes]:
        """Yield text frames until the socket closes."""
        if not self._ws:
            raise ConnectionClosedError("WebSocket not connected")

        async for data in self._ws:
            yield data


class MockClientTransport(BaseClientTransport):
    """Mock transport for testing.

    Plays the server side in memory: records requests, answers them with
    canned responses, and lets tests inject events or raw messages.

    Usage:
        transport = MockClientTransport()
        transport.set_response("GetCurrentScene", {"name": "Intro", "sources": []})

        client = ObsWebSocket(transport=transport)
        scene = await client.scenes.get_current()

        assert transport.recorded_commands[0].request_type == "GetCurrentScene"

    With auto_respond=False nothing is answered automatically; tests then
    reply with inject_response() in whatever order they like.
    """

    def __init__(self, auto_respond: bool = True) -> None:
        super().__init__(ClientTransportConfig(url="mock://obs"))
        self.auto_respond = auto_respond
        self._responses: dict[str, dict[str, Any]] = {}
        self._recorded_commands: list[Command] = []
        self._inbound: asyncio.Queue[str | bytes | None] = asyncio.Queue()

        # An open server unless a test says otherwise
        self.set_response(RequestType.GET_AUTH_REQUIRED, {"authRequired": False})

    @property
    def recorded_commands(self) -> list[Command]:
        """Get all requests sent through this transport."""
        return self._recorded_commands.copy()

    def set_response(
        self,
        request_type: str | RequestType,
        data: dict[str, Any] | None = None,
        status: str = STATUS_OK,
        error: str | None = None,
    ) -> None:
        """Set the canned response for a request type."""
        payload: dict[str, Any] = {"status": status, **(data or {})}
        if error is not None:
            payload["error"] = error
        self._responses[_request_name(request_type)] = payload

    def set_error(self, request_type: str | RequestType, error: str) -> None:
        """Make a request type fail with status "error"."""
        self.set_response(request_type, status=STATUS_ERROR, error=error)

    def inject_message(self, message: str | bytes | dict[str, Any]) -> None:
        """Feed one raw inbound message to the reader."""
        raw = message if isinstance(message, (str, bytes)) else json.dumps(message)
        self._inbound.put_nowait(raw)

    def inject_response(
        self,
        message_id: str,
        data: dict[str, Any] | None = None,
        status: str = STATUS_OK,
        error: str | None = None,
    ) -> None:
        """Answer a specific request."""
        payload: dict[str, Any] = {MESSAGE_ID_KEY: message_id, "status": status, **(data or {})}
        if error is not None:
            payload["error"] = error
        self.inject_message(payload)

    def inject_event(self, update_type: str, data: dict[str, Any] | None = None) -> None:
        """Push an uncorrelated event."""
        self.inject_message({"update-type": update_type, **(data or {})})

    def drop_connection(self) -> None:
        """Simulate the server closing the socket."""
        self._inbound.put_nowait(None)

    def clear(self) -> None:
        """Clear recorded requests and canned responses."""
        self._recorded_commands.clear()
        self._responses.clear()
        self.set_response(RequestType.GET_AUTH_REQUIRED, {"authRequired": False})

    async def _do_connect(self) -> None:
        """Fresh inbound stream per connection."""
        self._inbound = asyncio.Queue()

    async def _do_disconnect(self) -> None:
        """No-op for mock."""
        pass

    async def _do_send(self, command: Command) -> None:
        """Record request and queue the canned response."""
        self._recorded_commands.append(command)

        if not self.auto_respond:
            return

        payload = self._responses.get(command.request_type, {"status": STATUS_OK})
        self.inject_message({MESSAGE_ID_KEY: command.message_id, **payload})

    async def _receive_messages(self) -> AsyncIterator[str | bytes]:
        """Yield injected messages until drop_connection()."""
        while True:
            raw = await self._inbound.get()
            if raw is None:
                break
            yield raw


def _request_name(request_type: str | RequestType) -> str:
    return request_type.value if isinstance(request_type, RequestType) else request_type


# Factory functions


def create_websocket_transport(
    url: str = DEFAULT_URL,
    password: str | None = None,
    timeout: float | None = None,
) -> WebSocketClientTransport:
    """Create a WebSocket transport.

    Args:
        url: Server URL in the form ws://host:port
        password: Password for the login handshake, if OBS requires one
        timeout: Seconds to wait for each response (None = no limit)

    Returns:
        WebSocketClientTransport for the given server
    """
    config = ClientTransportConfig(url=url, password=password, timeout=timeout)
    return WebSocketClientTransport(config)


def create_mock_transport(auto_respond: bool = True) -> MockClientTransport:
    """Create a mock transport for testing."""
    return MockClientTransport(auto_respond=auto_respond)
