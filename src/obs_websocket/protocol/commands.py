"""Request definitions for the OBS WebSocket protocol.

Requests are commands from the client that expect exactly one response.
Each request carries a `message-id` for correlation with its response.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

REQUEST_TYPE_KEY = "request-type"
MESSAGE_ID_KEY = "message-id"


class RequestType(str, Enum):
    """Request types used by the typed command surface."""

    # Authentication
    GET_AUTH_REQUIRED = "GetAuthRequired"
    AUTHENTICATE = "Authenticate"

    # Streaming
    GET_STREAMING_STATUS = "GetStreamingStatus"
    START_STREAMING = "StartStreaming"
    STOP_STREAMING = "StopStreaming"
    START_STOP_STREAMING = "StartStopStreaming"
    GET_STREAM_SETTINGS = "GetStreamSettings"
    SET_STREAM_SETTINGS = "SetStreamSettings"

    # Studio mode
    GET_STUDIO_MODE_STATUS = "GetStudioModeStatus"
    ENABLE_STUDIO_MODE = "EnableStudioMode"
    DISABLE_STUDIO_MODE = "DisableStudioMode"
    TOGGLE_STUDIO_MODE = "ToggleStudioMode"

    # Scenes
    GET_CURRENT_SCENE = "GetCurrentScene"
    SET_CURRENT_SCENE = "SetCurrentScene"
    GET_SCENE_LIST = "GetSceneList"
    GET_SCENE_ITEM_LIST = "GetSceneItemList"
    SET_SCENE_ITEM_RENDER = "SetSceneItemRender"

    # Media
    PLAY_PAUSE_MEDIA = "PlayPauseMedia"
    RESTART_MEDIA = "RestartMedia"
    STOP_MEDIA = "StopMedia"
    GET_MEDIA_STATE = "GetMediaState"


class Command(BaseModel):
    """A request from client to server.

    On the wire the request type, the message id and the arguments are
    flattened into one JSON object:

        {
            "request-type": "SetCurrentScene",
            "message-id": "7",
            "scene-name": "Intro"
        }

    The server answers with a response whose `message-id` equals this one.
    """

    request_type: str
    message_id: str
    args: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        request_type: str | RequestType,
        message_id: str,
        args: dict[str, Any] | None = None,
    ) -> Command:
        """Factory method for creating requests."""
        return cls(
            request_type=(
                request_type.value if isinstance(request_type, RequestType) else request_type
            ),
            message_id=message_id,
            args=args or {},
        )

    def to_payload(self) -> dict[str, Any]:
        """Build the flat wire object.

        Arguments can never overwrite the request type or message id.
        """
        payload: dict[str, Any] = {
            REQUEST_TYPE_KEY: self.request_type,
            MESSAGE_ID_KEY: self.message_id,
        }
        for key, value in self.args.items():
            if key not in payload:
                payload[key] = value
        return payload

    def to_json(self) -> str:
        """Serialize to the JSON text frame sent on the socket."""
        return json.dumps(self.to_payload())
