"""OBS WebSocket client.

Wraps a ClientTransport with the login handshake, the typed request
surface and event observer registration.

Usage:
    async with create_client("ws://localhost:4444", password="secret") as obs:
        status = await obs.streaming.get_status()
        if not status.streaming:
            await obs.streaming.start()

        obs.add_listener(on_event)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import ValidationError

from .auth import compute_auth_response
from .dispatcher import EventDispatcher, Observer
from .errors import AuthenticationError, OperationFailedError, RequestRejectedError
from .protocol.commands import RequestType
from .protocol.messages import Response
from .transport import (
    DEFAULT_URL,
    ClientTransport,
    ClientTransportConfig,
    MockClientTransport,
    WebSocketClientTransport,
    create_mock_transport,
    create_websocket_transport,
)
from .types import (
    AuthRequired,
    MediaState,
    ObsModel,
    Scene,
    SceneItemList,
    SceneList,
    StreamSettings,
    StreamStatus,
    StudioModeStatus,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=ObsModel)


def _parse_result(model: type[M], response: Response, what: str) -> M:
    """Map a response payload into a typed record.

    Raises:
        OperationFailedError: If the payload is missing or does not fit
    """
    if not response.data:
        raise OperationFailedError(f"Could not retrieve {what}")
    try:
        return model.model_validate(response.data)
    except ValidationError as e:
        raise OperationFailedError(f"Could not retrieve {what}: {e}") from e


@dataclass
class StreamingAPI:
    """Streaming operations."""

    _client: ObsWebSocket

    async def get_status(self) -> StreamStatus:
        """Get streaming and recording status."""
        response = await self._client.command(RequestType.GET_STREAMING_STATUS)
        return _parse_result(StreamStatus, response, "the stream status")

    async def start(self) -> None:
        await self._client.command(RequestType.START_STREAMING)

    async def stop(self) -> None:
        await self._client.command(RequestType.STOP_STREAMING)

    async def toggle(self) -> None:
        await self._client.command(RequestType.START_STOP_STREAMING)

    async def get_settings(self) -> StreamSettings:
        """Get the current stream service settings."""
        response = await self._client.command(RequestType.GET_STREAM_SETTINGS)
        return _parse_result(StreamSettings, response, "the stream settings")

    async def set_settings(self, settings: StreamSettings, save: bool = False) -> None:
        """Replace the stream service settings.

        Args:
            settings: Service type and connection settings
            save: Persist the settings to disk in OBS
        """
        await self._client.command(
            RequestType.SET_STREAM_SETTINGS,
            {
                "type": settings.type,
                "settings": settings.settings.to_args(),
                "save": save,
            },
        )


@dataclass
class StudioModeAPI:
    """Studio mode operations."""

    _client: ObsWebSocket

    async def get_status(self) -> StudioModeStatus:
        response = await self._client.command(RequestType.GET_STUDIO_MODE_STATUS)
        return _parse_result(StudioModeStatus, response, "the studio mode status")

    async def enable(self) -> None:
        await self._client.command(RequestType.ENABLE_STUDIO_MODE)

    async def disable(self) -> None:
        await self._client.command(RequestType.DISABLE_STUDIO_MODE)

    async def toggle(self) -> None:
        await self._client.command(RequestType.TOGGLE_STUDIO_MODE)


@dataclass
class ScenesAPI:
    """Scene operations."""

    _client: ObsWebSocket

    async def get_current(self) -> Scene:
        """Get the program scene with its sources."""
        response = await self._client.command(RequestType.GET_CURRENT_SCENE)
        return _parse_result(Scene, response, "the current scene")

    async def set_current(self, scene_name: str) -> None:
        """Switch the program scene."""
        await self._client.command(RequestType.SET_CURRENT_SCENE, {"scene-name": scene_name})

    async def list(self) -> SceneList:
        """List all scenes and the name of the current one."""
        response = await self._client.command(RequestType.GET_SCENE_LIST)
        return _parse_result(SceneList, response, "the scene list")

    async def get_items(self, scene_name: str | None = None) -> SceneItemList:
        """List the items of a scene (current scene when omitted)."""
        args = {"sceneName": scene_name} if scene_name else None
        response = await self._client.command(RequestType.GET_SCENE_ITEM_LIST, args)
        return _parse_result(SceneItemList, response, "the scene items")

    async def set_item_render(
        self,
        source: str,
        render: bool,
        scene_name: str | None = None,
    ) -> None:
        """Show or hide a scene item.

        Args:
            source: Scene item name
            render: True to show, False to hide
            scene_name: Scene holding the item (current scene when omitted)
        """
        args: dict[str, Any] = {"source": source, "render": render}
        if scene_name:
            args["scene-name"] = scene_name
        await self._client.command(RequestType.SET_SCENE_ITEM_RENDER, args)


@dataclass
class MediaAPI:
    """Media source transport controls."""

    _client: ObsWebSocket

    async def play_pause(self, source_name: str, pause: bool | None = None) -> None:
        """Toggle play/pause, or force a state.

        Args:
            source_name: Media source name
            pause: True to pause, False to play, None to toggle
        """
        args: dict[str, Any] = {"sourceName": source_name}
        if pause is not None:
            args["playPause"] = pause
        await self._client.command(RequestType.PLAY_PAUSE_MEDIA, args)

    async def restart(self, source_name: str) -> None:
        await self._client.command(RequestType.RESTART_MEDIA, {"sourceName": source_name})

    async def stop(self, source_name: str) -> None:
        await self._client.command(RequestType.STOP_MEDIA, {"sourceName": source_name})

    async def get_state(self, source_name: str) -> MediaState:
        response = await self._client.command(
            RequestType.GET_MEDIA_STATE, {"sourceName": source_name}
        )
        return _parse_result(MediaState, response, "the media state")


@dataclass(eq=False)
class ObsWebSocket:
    """OBS WebSocket client.

    Works with any ClientTransport implementation:
    - WebSocketClientTransport: Connect to a running OBS
    - MockClientTransport: For testing

    Usage:
        # Real server
        async with create_client("ws://localhost:4444", password="secret") as obs:
            scene = await obs.scenes.get_current()

        # Testing
        transport = create_mock_transport()
        transport.set_response("GetCurrentScene", {"name": "Intro"})
        obs = ObsWebSocket(transport)
    """

    _transport: ClientTransport
    _owns_transport: bool = field(default=True)
    _dispatcher: EventDispatcher = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._dispatcher = EventDispatcher(owner=self)
        self._transport.on_event(self._dispatcher.submit)

    @property
    def transport(self) -> ClientTransport:
        """Access the underlying transport."""
        return self._transport

    @property
    def streaming(self) -> StreamingAPI:
        """Streaming operations."""
        return StreamingAPI(_client=self)

    @property
    def studio_mode(self) -> StudioModeAPI:
        """Studio mode operations."""
        return StudioModeAPI(_client=self)

    @property
    def scenes(self) -> ScenesAPI:
        """Scene operations."""
        return ScenesAPI(_client=self)

    @property
    def media(self) -> MediaAPI:
        """Media transport controls."""
        return MediaAPI(_client=self)

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._transport.is_connected

    # Events

    @property
    def listeners(self) -> list[Observer]:
        return self._dispatcher.listeners

    def add_listener(self, observer: Observer) -> None:
        """Register an observer called as observer(event, client) for every event."""
        self._dispatcher.add_listener(observer)

    def remove_listener(self, observer: Observer) -> None:
        self._dispatcher.remove_listener(observer)

    # Requests

    async def command(
        self,
        request_type: str | RequestType,
        args: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Response:
        """Send any request and wait for its response.

        Args:
            request_type: Request name
            args: Request arguments
            timeout: Seconds to wait; None uses the transport's config.timeout

        Raises:
            RequestRejectedError: If OBS answers with status "error"
            ConnectionClosedError: If the connection is or becomes closed
            TimeoutError: If a timeout is set and expires
        """
        return await self._transport.command(request_type, args, timeout=timeout)

    # Authentication

    async def get_auth_required(self) -> AuthRequired:
        """Ask whether OBS requires authentication, with salt and challenge."""
        response = await self.command(RequestType.GET_AUTH_REQUIRED)
        return _parse_result(AuthRequired, response, "the authentication requirements")

    async def authenticate(
        self, password: str, requirements: AuthRequired | None = None
    ) -> None:
        """Answer the server's challenge.

        Args:
            password: Password configured in OBS
            requirements: Salt and challenge from get_auth_required()
                (fetched when omitted)

        Raises:
            AuthenticationError: If OBS rejects the answer
        """
        if requirements is None:
            requirements = await self.get_auth_required()

        if requirements.salt is None or requirements.challenge is None:
            raise AuthenticationError("Server did not provide a salt and challenge")

        auth = compute_auth_response(password, requirements.salt, requirements.challenge)
        try:
            await self.command(RequestType.AUTHENTICATE, {"auth": auth})
        except RequestRejectedError as e:
            raise AuthenticationError(f"Authentication failed: {e.error or e.raw}") from e

        logger.info("Authenticated with OBS")

    async def login(self, password: str | None = None) -> None:
        """Run the login handshake, authenticating only if OBS asks for it."""
        requirements = await self.get_auth_required()
        if not requirements.auth_required:
            logger.debug("OBS does not require authentication")
            return

        if password is None:
            raise AuthenticationError("OBS requires a password but none was provided")

        await self.authenticate(password, requirements)

    # Lifecycle

    async def connect(self, password: str | None = None) -> None:
        """Connect, start event delivery and log in.

        Args:
            password: Overrides the password from the transport config
        """
        await self._transport.connect()
        self._dispatcher.start()

        if password is None:
            password = self._transport.config.password

        try:
            await self.login(password)
        except Exception:
            await self.close()
            raise

    async def close(self) -> None:
        """Close the connection ("going away") and stop event delivery."""
        if self._owns_transport:
            await self._transport.disconnect()
        await self._dispatcher.stop()

    async def __aenter__(self) -> ObsWebSocket:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# Factory functions


def create_client(
    url: str = DEFAULT_URL,
    password: str | None = None,
    timeout: float | None = None,
) -> ObsWebSocket:
    """Create a client for an OBS instance.

    Args:
        url: Server URL in the form ws://host:port
        password: Password, if OBS requires authentication
        timeout: Seconds to wait for each response (None = no limit)

    Returns:
        ObsWebSocket with WebSocketClientTransport (not yet connected)
    """
    transport = create_websocket_transport(url=url, password=password, timeout=timeout)
    return ObsWebSocket(_transport=transport)


def create_client_from_env(**overrides: Any) -> ObsWebSocket:
    """Create a client configured from OBS_WEBSOCKET_* environment variables."""
    config = ClientTransportConfig.from_env(**overrides)
    return ObsWebSocket(_transport=WebSocketClientTransport(config))


def create_test_client(
    transport: MockClientTransport | None = None,
) -> ObsWebSocket:
    """Create a client for testing.

    Args:
        transport: Pre-configured mock transport (creates new if None)

    Returns:
        ObsWebSocket with MockClientTransport
    """
    return ObsWebSocket(_transport=transport or create_mock_transport())
