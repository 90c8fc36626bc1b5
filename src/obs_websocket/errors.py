"""Error taxonomy for the OBS WebSocket client.

All errors raised by the client derive from ObsWebSocketError:
- ConnectionClosedError: the socket is closed, broken, or ended mid-wait
- RequestRejectedError: the server answered a request with status "error"
- OperationFailedError: a typed operation got no usable payload back
- AuthenticationError: the login handshake failed
"""

from __future__ import annotations


class ObsWebSocketError(Exception):
    """Base class for all client errors."""

    pass


class ConnectionClosedError(ObsWebSocketError, ConnectionError):
    """Raised when the connection is closed or breaks.

    Also a ConnectionError so callers catching the builtin keep working.
    """

    pass


class RequestRejectedError(ObsWebSocketError):
    """Raised when a correlated response carries a failure status."""

    def __init__(self, request_type: str, error: str | None, raw: str) -> None:
        super().__init__(f"Server returned error to {request_type} request: {raw}")
        self.request_type = request_type
        self.error = error
        self.raw = raw


class OperationFailedError(ObsWebSocketError):
    """Raised when a typed operation cannot build its result."""

    pass


class AuthenticationError(ObsWebSocketError):
    """Raised when the challenge/response handshake fails."""

    pass
