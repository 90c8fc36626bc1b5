"""Unit tests for the client transport and request correlation.

Tests the correlation engine against the in-memory mock server:
- Message id allocation
- Matching responses to requests regardless of arrival order
- Event/response separation
- Failure modes (rejection, closed stream, timeout, send errors)
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError as WsConnectionClosedError
from websockets.frames import Close

from obs_websocket.errors import (
    ConnectionClosedError,
    ObsWebSocketError,
    RequestRejectedError,
)
from obs_websocket.protocol import Command, ObsEvent, RequestType, parse_message
from obs_websocket.transport import (
    CLOSE_GOING_AWAY,
    ClientTransport,
    ClientTransportConfig,
    MockClientTransport,
    TransportState,
    WebSocketClientTransport,
    create_mock_transport,
    create_websocket_transport,
)


async def wait_until(predicate, attempts: int = 100) -> None:
    """Yield to the event loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


# =============================================================================
# Configuration
# =============================================================================


class TestClientTransportConfig:
    """Tests for ClientTransportConfig."""

    def test_defaults(self) -> None:
        config = ClientTransportConfig()

        assert config.url == "ws://localhost:4444"
        assert config.password is None
        assert config.timeout is None

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("OBS_WEBSOCKET_URL", "ws://studio:4455")
        monkeypatch.setenv("OBS_WEBSOCKET_PASSWORD", "hunter2")
        monkeypatch.setenv("OBS_WEBSOCKET_TIMEOUT", "2.5")

        config = ClientTransportConfig.from_env()

        assert config.url == "ws://studio:4455"
        assert config.password == "hunter2"
        assert config.timeout == 2.5

    def test_from_env_unset(self, monkeypatch) -> None:
        for name in ("OBS_WEBSOCKET_URL", "OBS_WEBSOCKET_PASSWORD", "OBS_WEBSOCKET_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)

        config = ClientTransportConfig.from_env()

        assert config == ClientTransportConfig()

    def test_overrides_beat_env(self, monkeypatch) -> None:
        monkeypatch.setenv("OBS_WEBSOCKET_URL", "ws://studio:4455")

        config = ClientTransportConfig.from_env(url="ws://other:1", password=None)

        assert config.url == "ws://other:1"

    def test_factories(self) -> None:
        transport = create_websocket_transport("ws://host:1234", password="pw", timeout=3.0)

        assert isinstance(transport, WebSocketClientTransport)
        assert transport.config.url == "ws://host:1234"
        assert transport.config.password == "pw"
        assert isinstance(create_mock_transport(), MockClientTransport)

    def test_implementations_satisfy_protocol(self) -> None:
        assert isinstance(MockClientTransport(), ClientTransport)
        assert isinstance(WebSocketClientTransport(), ClientTransport)


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for connect/disconnect state handling."""

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self) -> None:
        transport = MockClientTransport()
        assert transport.state == TransportState.DISCONNECTED

        await transport.connect()
        assert transport.is_connected

        await transport.disconnect()
        assert transport.state == TransportState.DISCONNECTED
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self) -> None:
        transport = MockClientTransport()
        await transport.connect()
        reader = transport._reader_task

        await transport.connect()

        assert transport._reader_task is reader
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_safe(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        await transport.disconnect()
        await transport.disconnect()

        assert transport.state == TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_failure_resets_state(self) -> None:
        transport = MockClientTransport()
        transport._do_connect = AsyncMock(side_effect=OSError("refused"))

        with pytest.raises(ConnectionError, match="refused"):
            await transport.connect()

        assert transport.state == TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        async with MockClientTransport() as transport:
            assert transport.is_connected
        assert not transport.is_connected


# =============================================================================
# Message ids
# =============================================================================


class TestMessageIds:
    """Tests for identifier allocation."""

    @pytest.mark.asyncio
    async def test_ids_start_at_one_and_increase(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        ids = [await transport.issue("GetVersion") for _ in range(3)]

        assert ids == ["1", "2", "3"]
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_concurrent_issue_yields_unique_ids(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        ids = await asyncio.gather(*(transport.issue("GetVersion") for _ in range(50)))

        assert sorted(ids, key=int) == [str(i) for i in range(1, 51)]
        assert [c.message_id for c in transport.recorded_commands] == [
            str(i) for i in range(1, 51)
        ]
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_ids_not_reset_by_reconnect(self) -> None:
        transport = MockClientTransport()
        await transport.connect()
        await transport.command("GetVersion")
        await transport.disconnect()

        await transport.connect()
        message_id = await transport.issue("GetVersion")

        assert message_id == "2"
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_request_written_as_flat_json(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        await transport.command(RequestType.SET_CURRENT_SCENE, {"scene-name": "Intro"})

        sent = transport.recorded_commands[0]
        assert json.loads(sent.to_json()) == {
            "request-type": "SetCurrentScene",
            "message-id": "1",
            "scene-name": "Intro",
        }
        await transport.disconnect()


# =============================================================================
# Correlation
# =============================================================================


class TestCorrelation:
    """Tests for matching responses to requests."""

    @pytest.mark.asyncio
    async def test_out_of_order_responses(self) -> None:
        """Each waiter gets its own response whatever the arrival order."""
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        ids = [await transport.issue("GetSceneList") for _ in range(5)]
        waits = [asyncio.create_task(transport.await_response(i)) for i in ids]

        for message_id in reversed(ids):
            transport.inject_response(message_id, {"echo": message_id})

        responses = await asyncio.gather(*waits)

        assert [r.message_id for r in responses] == ids
        assert [r.data["echo"] for r in responses] == ids
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_concurrent_commands(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        responses = await asyncio.gather(
            *(transport.command(f"Request{i}") for i in range(20))
        )

        assert [r.message_id for r in responses] == [str(i) for i in range(1, 21)]
        assert transport.pending_count == 0
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_response_before_wait_is_not_lost(self) -> None:
        """The pending entry exists from issue(), not from await_response()."""
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        message_id = await transport.issue("GetCurrentScene")
        transport.inject_response(message_id, {"name": "Intro"})
        await asyncio.sleep(0.01)

        response = await transport.await_response(message_id, timeout=1.0)

        assert response.data == {"name": "Intro"}
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_ok_without_fields_resolves(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        response = await transport.command("StartStreaming")

        assert response.ok
        assert response.data == {}
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_error_status_raises_with_request_name(self) -> None:
        transport = MockClientTransport()
        transport.set_error("SetCurrentScene", "requested scene does not exist")
        await transport.connect()

        with pytest.raises(RequestRejectedError) as exc_info:
            await transport.command("SetCurrentScene", {"scene-name": "Nope"})

        error = exc_info.value
        assert error.request_type == "SetCurrentScene"
        assert error.error == "requested scene does not exist"
        assert "SetCurrentScene" in str(error)
        assert "requested scene does not exist" in error.raw
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_rejection_only_affects_its_own_request(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        good = await transport.issue("GetVersion")
        bad = await transport.issue("SetCurrentScene")
        transport.inject_response(bad, status="error", error="no")
        transport.inject_response(good, {"version": 4.9})

        with pytest.raises(RequestRejectedError):
            await transport.await_response(bad)
        response = await transport.await_response(good)

        assert response.data["version"] == 4.9
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_unknown_message_id_raises(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        with pytest.raises(ObsWebSocketError, match="No pending request"):
            await transport.await_response("42")
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_unmatched_response_is_dropped(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        handler = MagicMock()
        transport.on_event(handler)
        await transport.connect()

        message_id = await transport.issue("GetVersion")
        transport.inject_response("999", {"stray": True})
        transport.inject_response(message_id, {"version": 1})

        response = await transport.await_response(message_id)

        assert response.data == {"version": 1}
        handler.assert_not_called()
        await transport.disconnect()


# =============================================================================
# Events vs responses
# =============================================================================


class TestEventRouting:
    """Tests for the response/event split."""

    @pytest.mark.asyncio
    async def test_events_go_to_handler_only(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        events: list[ObsEvent] = []
        transport.on_event(events.append)
        await transport.connect()

        message_id = await transport.issue("GetCurrentScene")
        wait = asyncio.create_task(transport.await_response(message_id))

        transport.inject_event("SwitchScenes", {"scene-name": "Intro"})
        await wait_until(lambda: len(events) == 1)
        assert not wait.done()

        transport.inject_response(message_id, {"name": "Intro"})
        response = await wait

        assert response.data == {"name": "Intro"}
        assert [e.update_type for e in events] == ["SwitchScenes"]
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_events_without_handler_are_dropped(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        transport.inject_event("StreamStarting")
        response = await transport.command("GetVersion")

        assert response.ok
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_kill_reader(self) -> None:
        transport = MockClientTransport()
        transport.on_event(MagicMock(side_effect=RuntimeError("bad handler")))
        await transport.connect()

        transport.inject_event("StreamStarting")
        response = await transport.command("GetVersion")

        assert response.ok
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_garbage_is_skipped(self) -> None:
        transport = MockClientTransport()
        await transport.connect()

        transport.inject_message("not json at all")
        response = await transport.command("GetVersion")

        assert response.ok
        await transport.disconnect()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "frame",
        [
            b"\xff\xfe",
            "[1, 2, 3]",
            {"message-id": "99", "status": None},
            {"message-id": "98", "status": "error", "error": 42},
            {"update-type": "Heartbeat", "stream-timecode": 5},
        ],
        ids=["not-utf8", "json-array", "null-status", "numeric-error", "numeric-timecode"],
    )
    async def test_malformed_frame_keeps_connection_open(self, frame) -> None:
        transport = MockClientTransport()
        events: list[ObsEvent] = []
        transport.on_event(events.append)
        await transport.connect()

        transport.inject_message(frame)
        response = await asyncio.wait_for(transport.command("GetVersion"), timeout=1.0)

        assert response.ok
        assert transport.is_connected
        assert events == []
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_routing_error_does_not_end_reader(self) -> None:
        real_parse = parse_message

        def flaky_parse(raw):
            if raw == "explode":
                raise RuntimeError("routing bug")
            return real_parse(raw)

        transport = MockClientTransport()
        await transport.connect()

        with patch("obs_websocket.transport.parse_message", side_effect=flaky_parse):
            transport.inject_message("explode")
            response = await asyncio.wait_for(transport.command("GetVersion"), timeout=1.0)

        assert response.ok
        assert transport.state == TransportState.CONNECTED
        await transport.disconnect()


# =============================================================================
# Failure modes
# =============================================================================


class TestClosedConnection:
    """Tests for closed and broken streams."""

    @pytest.mark.asyncio
    async def test_issue_before_connect_fails_fast(self) -> None:
        transport = MockClientTransport()

        with pytest.raises(ConnectionClosedError):
            await transport.issue("GetVersion")

    @pytest.mark.asyncio
    async def test_issue_after_disconnect_fails_fast(self) -> None:
        transport = MockClientTransport()
        await transport.connect()
        await transport.disconnect()

        with pytest.raises(ConnectionClosedError):
            await asyncio.wait_for(transport.command("GetVersion"), timeout=1.0)

    @pytest.mark.asyncio
    async def test_server_drop_fails_pending_waits(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        message_id = await transport.issue("GetStreamingStatus")
        wait = asyncio.create_task(transport.await_response(message_id))
        await asyncio.sleep(0)

        transport.drop_connection()

        with pytest.raises(ConnectionClosedError, match="GetStreamingStatus"):
            await wait
        assert transport.state == TransportState.CLOSED

        with pytest.raises(ConnectionClosedError):
            await transport.issue("GetVersion")

        await transport.disconnect()
        assert transport.state == TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending_waits(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        message_id = await transport.issue("GetStreamingStatus")
        wait = asyncio.create_task(transport.await_response(message_id))
        await asyncio.sleep(0)

        await transport.disconnect()

        with pytest.raises(ConnectionClosedError):
            await wait

    @pytest.mark.asyncio
    async def test_send_failure_is_connection_error(self) -> None:
        transport = MockClientTransport()
        await transport.connect()
        transport._do_send = AsyncMock(side_effect=OSError("broken pipe"))

        with pytest.raises(ConnectionClosedError, match="broken pipe"):
            await transport.issue("GetVersion")

        assert transport.pending_count == 0
        await transport.disconnect()


class TestTimeout:
    """Tests for caller-supplied timeouts."""

    @pytest.mark.asyncio
    async def test_timeout_abandons_wait(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        message_id = await transport.issue("GetMediaState")

        with pytest.raises(TimeoutError, match="GetMediaState"):
            await transport.await_response(message_id, timeout=0.05)

        assert transport.pending_count == 0
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_late_response_is_dropped(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        late_id = await transport.issue("GetMediaState")
        with pytest.raises(TimeoutError):
            await transport.await_response(late_id, timeout=0.01)

        # Late answer arrives, then a new request still works
        transport.inject_response(late_id, {"mediaState": "playing"})
        next_id = await transport.issue("GetVersion")
        transport.inject_response(next_id)

        response = await transport.await_response(next_id, timeout=1.0)

        assert response.message_id == next_id
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_config_timeout_is_default(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        transport.config.timeout = 0.01
        await transport.connect()

        with pytest.raises(TimeoutError):
            await transport.command("GetVersion")
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_cancelled_wait_is_removed(self) -> None:
        transport = MockClientTransport(auto_respond=False)
        await transport.connect()

        message_id = await transport.issue("GetVersion")
        wait = asyncio.create_task(transport.await_response(message_id))
        await asyncio.sleep(0)
        wait.cancel()

        with pytest.raises(asyncio.CancelledError):
            await wait
        assert transport.pending_count == 0
        await transport.disconnect()


# =============================================================================
# WebSocketClientTransport (mocked socket)
# =============================================================================


class TestWebSocketClientTransport:
    """Tests for the websockets-backed transport with a mocked socket."""

    @pytest.mark.asyncio
    async def test_connect_uses_config(self) -> None:
        ws = MagicMock()
        ws.__aiter__.return_value = iter(())
        ws.close = AsyncMock()
        config = ClientTransportConfig(url="ws://obs:4444", ping_interval=5.0)

        with patch(
            "obs_websocket.transport.websockets.connect", AsyncMock(return_value=ws)
        ) as connect:
            transport = WebSocketClientTransport(config)
            await transport.connect()

        connect.assert_awaited_once()
        assert connect.call_args.args[0] == "ws://obs:4444"
        assert connect.call_args.kwargs["ping_interval"] == 5.0
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_sends_going_away(self) -> None:
        ws = MagicMock()
        ws.__aiter__.return_value = iter(())
        ws.close = AsyncMock()

        with patch("obs_websocket.transport.websockets.connect", AsyncMock(return_value=ws)):
            transport = WebSocketClientTransport()
            await transport.connect()
            await transport.disconnect()

        ws.close.assert_awaited_once_with(code=CLOSE_GOING_AWAY)
        assert CLOSE_GOING_AWAY == 1001

    @pytest.mark.asyncio
    async def test_send_writes_json_text(self) -> None:
        transport = WebSocketClientTransport()
        transport._ws = MagicMock()
        transport._ws.send = AsyncMock()

        await transport._do_send(Command.create("GetVersion", "1"))

        sent = transport._ws.send.call_args.args[0]
        assert json.loads(sent) == {"request-type": "GetVersion", "message-id": "1"}

    @pytest.mark.asyncio
    async def test_send_on_closed_socket(self) -> None:
        transport = WebSocketClientTransport()
        transport._ws = MagicMock()
        transport._ws.send = AsyncMock(
            side_effect=WsConnectionClosedError(Close(1006, ""), None)
        )

        with pytest.raises(ConnectionClosedError):
            await transport._do_send(Command.create("GetVersion", "1"))

    @pytest.mark.asyncio
    async def test_send_without_socket(self) -> None:
        transport = WebSocketClientTransport()

        with pytest.raises(ConnectionClosedError):
            await transport._do_send(Command.create("GetVersion", "1"))
