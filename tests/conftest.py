import asyncio
import os
import sys
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import nats
import pytest
from nats.aio.client import Client

# Add the parent directory to sys.path to ensure imports work correctly
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from topicLoom.common.constants import ConnectionEvents, LoggerConstants

# Override log file paths for testing to avoid writing to real log files
LoggerConstants.TOPICLOOM_BRIDGE_LOG_FILE = "/tmp/test_topicLoom_bridge.log"
LoggerConstants.TOPICLOOM_TRANSPORT_LOG_FILE = "/tmp/test_topicLoom_transport.log"
LoggerConstants.TOPICLOOM_CLI_LOG_FILE = "/tmp/test_topicLoom_cli.log"

from topicLoom.common.errors import (
    BrokerConnectionError,
    PublishWhileDisconnected,
    SubscribeError,
)
from topicLoom.transport.base import BaseConnection, CompletionCallback


class FakeConnection(BaseConnection):
    """In-memory connection that records what the bridge asks of the broker."""

    def __init__(self, url, options=None, loop=None):
        super().__init__(url, options, loop)
        self._connected = False
        self.started = False
        self.closed = False
        self.calls: List[Tuple[str, str]] = []
        self.published: List[Tuple[str, str, int, bool]] = []
        self.fail_subscribe = set()
        self.auto_connect = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def subscribe_calls(self) -> List[str]:
        return [topic for action, topic in self.calls if action == "subscribe"]

    @property
    def unsubscribe_calls(self) -> List[str]:
        return [topic for action, topic in self.calls if action == "unsubscribe"]

    def start(self) -> None:
        self.started = True
        if self.auto_connect:
            self._loop.call_soon(self.simulate_connect)

    async def close(self) -> None:
        self._closing = True
        self._connected = False
        self.closed = True

    def subscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        self.calls.append(("subscribe", topic))
        error = SubscribeError(topic, "rejected") if topic in self.fail_subscribe else None
        self._complete(callback, error)

    def unsubscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        self.calls.append(("unsubscribe", topic))
        self._complete(callback)

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> None:
        if not self._connected:
            raise PublishWhileDisconnected(f"Cannot publish to '{topic}' while disconnected")
        self.published.append((topic, payload, qos, retain))

    # Broker side

    def simulate_connect(self) -> None:
        self._connected = True
        self._emit(ConnectionEvents.CONNECT)

    def simulate_error(self, message: str = "connection refused") -> None:
        self._connected = False
        self._emit(ConnectionEvents.ERROR, BrokerConnectionError(message))

    def simulate_offline(self) -> None:
        self._connected = False
        self._emit(ConnectionEvents.OFFLINE)

    def simulate_message(self, topic: str, payload: str) -> None:
        self._emit(ConnectionEvents.MESSAGE, topic, payload)


class FakeConnectionFactory:
    """Stands in for ``create_connection`` and remembers every connection made."""

    def __init__(self, auto_connect: bool = False):
        self.auto_connect = auto_connect
        self.connections: List[FakeConnection] = []

    def __call__(self, url, options=None, loop=None) -> FakeConnection:
        connection = FakeConnection(url, options, loop)
        connection.auto_connect = self.auto_connect
        self.connections.append(connection)
        return connection

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


async def settle(delay: float = 0) -> None:
    """Let callbacks scheduled on the loop run."""
    await asyncio.sleep(delay)
    await asyncio.sleep(0)


@pytest.fixture
def connection_factory():
    return FakeConnectionFactory()


@pytest.fixture
def auto_connection_factory():
    return FakeConnectionFactory(auto_connect=True)


@pytest.fixture
def mock_nats_client():
    """Create a mock NATS client for testing."""
    mock_client = AsyncMock(spec=Client)
    mock_client.is_closed = False
    mock_client.is_connected = True
    mock_client.subscribe.return_value = AsyncMock()
    return mock_client


@pytest.fixture
def monkeypatch_nats_connect(monkeypatch, mock_nats_client):
    """Patch nats.connect to return a mock client."""
    captured = MagicMock()

    async def mock_connect(*args, **kwargs):
        captured(*args, **kwargs)
        return mock_nats_client

    monkeypatch.setattr(nats, "connect", mock_connect)
    mock_nats_client.connect_kwargs = captured
    return mock_nats_client
