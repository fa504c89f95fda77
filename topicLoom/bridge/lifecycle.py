"""
Connection lifecycle for one broker.

Owns the broker connection, replaces it wholesale on configuration change or
after a connection error, and tracks the connection status shown to the
user. Everyone else reaches the broker through the subscribe/unsubscribe/
publish methods here and never holds the connection itself.
"""

import asyncio
import functools
from typing import Callable, Optional

from topicLoom.common.config import BrokerConfig
from topicLoom.common.constants import ConnectionEvents, HandlerConstants, TimeConstants
from topicLoom.common.errors import (
    BrokerConnectionError,
    PublishWhileDisconnected,
    SubscribeError,
    TopicLoomError,
    UnsubscribeError,
)
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.common.status_types import ConnectionStatus
from topicLoom.log_utils.logger import setup_logger
from topicLoom.transport import create_connection
from topicLoom.transport.base import BaseConnection, CompletionCallback

logger = setup_logger(name="connection_lifecycle")

ConnectionFactory = Callable[..., BaseConnection]


class ConnectionLifecycleManager:
    """Owns the broker connection and its status state machine."""

    def __init__(
        self,
        config: BrokerConfig,
        host_handlers: HandlerRegistry,
        connection_factory: ConnectionFactory = create_connection,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        retry_backoff: float = TimeConstants.RECONNECT_BACKOFF,
        publish_wait: float = TimeConstants.PUBLISH_RECONNECT_WAIT,
    ):
        self._config = config
        self._host_handlers = host_handlers
        self._connection_factory = connection_factory
        self._loop = loop
        self._retry_backoff = retry_backoff
        self._publish_wait = publish_wait

        self._connection: Optional[BaseConnection] = None
        self._status = ConnectionStatus.STOPPED
        self._status_message: Optional[str] = None
        self._connected_event = asyncio.Event()
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._stopped = True

        self._message_handler: Optional[Callable[[str, str], None]] = None
        self._connected_callback: Optional[Callable[[], None]] = None

    @property
    def config(self) -> BrokerConfig:
        return self._config

    @property
    def connection(self) -> Optional[BaseConnection]:
        return self._connection

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def status_message(self) -> Optional[str]:
        return self._status_message

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.connected

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    def set_message_handler(self, handler: Callable[[str, str], None]) -> None:
        self._message_handler = handler

    def set_connected_callback(self, callback: Callable[[], None]) -> None:
        """Called once per successful (re)connection."""
        self._connected_callback = callback

    def start(self) -> None:
        """Open the first connection. Must be called from the event loop."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._stopped = False
        self._open()

    async def reconnect(self, config: Optional[BrokerConfig] = None) -> None:
        """Close the current connection (if any) and open a new one."""
        if config is not None:
            self._config = config
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._stopped = False
        await self._close_connection()
        self._open()

    async def update_config(self, config: BrokerConfig) -> None:
        logger.info(f"Broker configuration changed: {config}")
        await self.reconnect(config)

    async def stop(self) -> None:
        """Close the connection for good; no retries happen afterwards."""
        self._stopped = True
        self._cancel_retry()
        if self._retry_task and not self._retry_task.done():
            self._retry_task.cancel()
        await self._close_connection()
        self._set_status(ConnectionStatus.STOPPED)

    def _open(self) -> None:
        self._cancel_retry()
        self._connected_event.clear()

        connection = self._connection_factory(
            self._config.url, self._config.connect_options(), self._loop
        )
        connection.set_event_handler(
            ConnectionEvents.CONNECT, functools.partial(self._on_connect, connection)
        )
        connection.set_event_handler(
            ConnectionEvents.ERROR, functools.partial(self._on_error, connection)
        )
        connection.set_event_handler(
            ConnectionEvents.OFFLINE, functools.partial(self._on_offline, connection)
        )
        connection.set_event_handler(
            ConnectionEvents.MESSAGE, functools.partial(self._on_message, connection)
        )
        self._connection = connection

        self._set_status(ConnectionStatus.CONNECTING)
        try:
            connection.start()
        except Exception as e:
            logger.exception(f"Failed to start connection to {self._config.url}: {e}")
            self._on_error(connection, BrokerConnectionError(str(e)))

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        self._connected_event.clear()
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.warning(f"Error closing connection to {connection.url}: {e}")

    # Narrow capability handed to the subscription registry

    def subscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        if self._connection is None:
            if callback:
                callback(SubscribeError(topic, "no connection"))
            return
        self._connection.subscribe(topic, callback)

    def unsubscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        if self._connection is None:
            if callback:
                callback(UnsubscribeError(topic, "no connection"))
            return
        self._connection.unsubscribe(topic, callback)

    async def publish(
        self, topic: str, payload: str, qos: int = 0, retain: bool = False
    ) -> bool:
        """Publish once, reconnecting first if needed. Returns whether it was sent.

        A publish that cannot be sent is dropped, never queued.
        """
        logger.debug(f"Sending MQTT message {[topic, payload]}")

        if not self.connected:
            logger.info(f"Not connected, re-establishing connection before publishing to '{topic}'")
            if self._status != ConnectionStatus.CONNECTING or self._connection is None:
                await self.reconnect()
            try:
                await asyncio.wait_for(
                    self._connected_event.wait(), timeout=self._publish_wait
                )
            except asyncio.TimeoutError:
                pass

        if not self.connected:
            self._drop_publish(topic, "not connected")
            return False

        try:
            self._connection.publish(topic, payload, qos=qos, retain=retain)
        except PublishWhileDisconnected as e:
            self._drop_publish(topic, str(e))
            return False
        except TopicLoomError as e:
            logger.warning(f"Publish to '{topic}' failed: {e}")
            return False
        return True

    def _drop_publish(self, topic: str, reason: str) -> None:
        message = f"Publish to '{topic}' dropped: {reason}"
        logger.warning(message)
        self._set_status(ConnectionStatus.DISCONNECTED, message, force=True)

    # Connection events, delivered on the event loop

    def _on_connect(self, connection: BaseConnection) -> None:
        if connection is not self._connection:
            return
        self._cancel_retry()
        self._set_status(ConnectionStatus.OK)
        self._connected_event.set()
        if self._connected_callback is not None:
            try:
                self._connected_callback()
            except Exception as e:
                logger.exception(f"Error in connected callback: {e}")

    def _on_error(self, connection: BaseConnection, error: Exception) -> None:
        if connection is not self._connection:
            return
        logger.warning(f"Connection error from {connection.url}: {error}")
        if connection.connected:
            return
        self._connected_event.clear()
        self._set_status(ConnectionStatus.ERROR, str(error))
        self._schedule_retry()

    def _on_offline(self, connection: BaseConnection) -> None:
        if connection is not self._connection:
            return
        self._connected_event.clear()
        self._set_status(ConnectionStatus.DISCONNECTED, "Offline")
        if connection.reconnects_automatically and not self._stopped:
            self._set_status(ConnectionStatus.CONNECTING, "Reconnecting")

    def _on_message(self, connection: BaseConnection, topic: str, payload: str) -> None:
        if connection is not self._connection or self._message_handler is None:
            return
        self._message_handler(topic, payload)

    def _schedule_retry(self) -> None:
        if self._stopped or self._retry_handle is not None or self._loop is None:
            return
        logger.info(f"Retrying connection in {self._retry_backoff}s")
        self._retry_handle = self._loop.call_later(self._retry_backoff, self._retry)

    def _retry(self) -> None:
        self._retry_handle = None
        if self._stopped:
            return
        self._retry_task = self._loop.create_task(self.reconnect(), name="broker_reconnect")

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _set_status(
        self,
        status: ConnectionStatus,
        message: Optional[str] = None,
        force: bool = False,
    ) -> None:
        if not force and status == self._status and message == self._status_message:
            return
        self._status = status
        self._status_message = message
        logger.info(f"Connection status: {status.value}" + (f" ({message})" if message else ""))
        self._host_handlers.notify(HandlerConstants.STATUS, status, message)
