"""OBS WebSocket client - remote control for OBS Studio.

Provides:
- ObsWebSocket: typed requests (streaming, studio mode, scenes, media)
  plus observer registration for server events
- Transports: WebSocket (real server) and mock (tests)
- Login handshake with challenge/response authentication
"""

from .auth import compute_auth_response
from .client import (
    MediaAPI,
    ObsWebSocket,
    ScenesAPI,
    StreamingAPI,
    StudioModeAPI,
    create_client,
    create_client_from_env,
    create_test_client,
)
from .dispatcher import EventDispatcher, Observer
from .errors import (
    AuthenticationError,
    ConnectionClosedError,
    ObsWebSocketError,
    OperationFailedError,
    RequestRejectedError,
)
from .protocol import Command, ObsEvent, RequestType, Response
from .transport import (
    BaseClientTransport,
    ClientTransport,
    ClientTransportConfig,
    MockClientTransport,
    TransportState,
    WebSocketClientTransport,
    create_mock_transport,
    create_websocket_transport,
)
from .types import (
    AuthRequired,
    MediaState,
    Scene,
    SceneItem,
    SceneItemList,
    SceneItemSummary,
    SceneList,
    StreamSetting,
    StreamSettings,
    StreamStatus,
    StudioModeStatus,
    StudioModeSwitched,
    SwitchScenes,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "ObsWebSocket",
    "StreamingAPI",
    "StudioModeAPI",
    "ScenesAPI",
    "MediaAPI",
    "create_client",
    "create_client_from_env",
    "create_test_client",
    # Events
    "EventDispatcher",
    "Observer",
    # Transport Protocol & Base
    "ClientTransport",
    "BaseClientTransport",
    "ClientTransportConfig",
    "TransportState",
    # Transport Implementations
    "WebSocketClientTransport",
    "MockClientTransport",
    "create_websocket_transport",
    "create_mock_transport",
    # Protocol
    "Command",
    "RequestType",
    "Response",
    "ObsEvent",
    # Auth
    "compute_auth_response",
    # Errors
    "ObsWebSocketError",
    "ConnectionClosedError",
    "RequestRejectedError",
    "OperationFailedError",
    "AuthenticationError",
    # Types
    "AuthRequired",
    "StreamStatus",
    "StreamSetting",
    "StreamSettings",
    "StudioModeStatus",
    "Scene",
    "SceneItem",
    "SceneList",
    "SceneItemSummary",
    "SceneItemList",
    "MediaState",
    "StudioModeSwitched",
    "SwitchScenes",
]
