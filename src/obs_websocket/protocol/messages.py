"""Inbound message definitions for the OBS WebSocket protocol.

Every inbound text frame is a JSON object and is exactly one of:
- Response: answer to a request, carries the request's `message-id`
- Event: server-initiated notification, has no `message-id`

The presence of `message-id` is the only thing that decides which one.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .commands import MESSAGE_ID_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

STATUS_OK = "ok"
STATUS_ERROR = "error"
UPDATE_TYPE_KEY = "update-type"

_RESPONSE_ENVELOPE_KEYS = frozenset({MESSAGE_ID_KEY, "status", "error"})
_EVENT_ENVELOPE_KEYS = frozenset({UPDATE_TYPE_KEY, "stream-timecode", "rec-timecode"})


class Response(BaseModel):
    """A correlated response from server to client.

    Example (success):
        {"message-id": "3", "status": "ok", "name": "Intro", "sources": []}

    Example (failure):
        {"message-id": "4", "status": "error", "error": "scene does not exist"}

    Envelope fields are lifted out; everything else lands in `data`.
    """

    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(alias=MESSAGE_ID_KEY)
    status: str = STATUS_OK
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    raw: str = ""

    @property
    def ok(self) -> bool:
        """Check if the server accepted the request."""
        return self.status == STATUS_OK

    @classmethod
    def from_payload(cls, payload: dict[str, Any], raw: str = "") -> Response:
        """Build a response from a decoded JSON object."""
        return cls(
            message_id=str(payload[MESSAGE_ID_KEY]),
            status=payload.get("status", STATUS_OK),
            error=payload.get("error"),
            data={k: v for k, v in payload.items() if k not in _RESPONSE_ENVELOPE_KEYS},
            raw=raw or json.dumps(payload),
        )


class ObsEvent(BaseModel):
    """An unsolicited event pushed by the server.

    Example:
        {
            "update-type": "SwitchScenes",
            "stream-timecode": "00:01:02.345",
            "scene-name": "Intro",
            "sources": []
        }
    """

    model_config = ConfigDict(populate_by_name=True)

    update_type: str = Field(alias=UPDATE_TYPE_KEY)
    stream_timecode: str | None = Field(default=None, alias="stream-timecode")
    rec_timecode: str | None = Field(default=None, alias="rec-timecode")
    data: dict[str, Any] = Field(default_factory=dict)
    raw: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any], raw: str = "") -> ObsEvent:
        """Build an event from a decoded JSON object."""
        return cls(
            update_type=str(payload.get(UPDATE_TYPE_KEY, "unknown")),
            stream_timecode=payload.get("stream-timecode"),
            rec_timecode=payload.get("rec-timecode"),
            data={k: v for k, v in payload.items() if k not in _EVENT_ENVELOPE_KEYS},
            raw=raw or json.dumps(payload),
        )

    def parse_as(self, model: type[T]) -> T:
        """Validate the event payload into a typed record."""
        return model.model_validate(self.data)


def parse_message(raw: str | bytes) -> Response | ObsEvent | None:
    """Classify one inbound text frame.

    Returns None for frames that are not UTF-8 JSON objects or whose
    envelope fields have the wrong type; those are logged and otherwise
    ignored.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Ignoring binary message that is not UTF-8: {e}")
            return None

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid message from server: {e} (message: {raw[:50]})")
        return None

    if not isinstance(payload, dict):
        logger.warning(f"Ignoring non-object message: {raw[:50]}")
        return None

    try:
        if MESSAGE_ID_KEY in payload:
            return Response.from_payload(payload, raw)
        return ObsEvent.from_payload(payload, raw)
    except ValidationError as e:
        logger.warning(
            f"Ignoring malformed message: {e.error_count()} invalid field(s) "
            f"(message: {raw[:50]})"
        )
        return None
