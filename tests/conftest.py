"""Pytest configuration and shared fixtures."""

import pytest

from obs_websocket.client import ObsWebSocket, create_test_client
from obs_websocket.transport import MockClientTransport


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def transport() -> MockClientTransport:
    """Mock transport that answers requests automatically."""
    return MockClientTransport()


@pytest.fixture
def manual_transport() -> MockClientTransport:
    """Mock transport where the test sends every response itself."""
    return MockClientTransport(auto_respond=False)


@pytest.fixture
def client(transport: MockClientTransport) -> ObsWebSocket:
    """Client over the auto-responding mock transport (not yet connected)."""
    return create_test_client(transport)
