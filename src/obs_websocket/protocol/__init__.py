"""Wire protocol layer.

Defines the request/response/event envelopes of the OBS WebSocket API.

Key concepts:
- Requests: Client -> Server, tagged with a `message-id`
- Responses: Server -> Client, echo the request's `message-id`
- Events: Server -> Client, no `message-id`, identified by `update-type`
"""

from .commands import MESSAGE_ID_KEY, REQUEST_TYPE_KEY, Command, RequestType
from .messages import STATUS_ERROR, STATUS_OK, ObsEvent, Response, parse_message

__all__ = [
    "Command",
    "RequestType",
    "REQUEST_TYPE_KEY",
    "MESSAGE_ID_KEY",
    "Response",
    "ObsEvent",
    "STATUS_OK",
    "STATUS_ERROR",
    "parse_message",
]
