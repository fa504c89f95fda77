"""
NATS transport built on nats-py.

MQTT-style topics are mapped onto NATS subjects: ``/`` separates levels on
one side and ``.`` on the other, ``+`` becomes ``*`` and ``#`` becomes ``>``.
Topics that themselves contain ``.`` do not survive the round trip. NATS has
no QoS or retained messages, so those publish options are ignored.
"""

import asyncio
import functools
from typing import Awaitable, Callable, Dict, List, Optional

import nats
from nats.aio.client import Client
from nats.aio.msg import Msg
from nats.aio.subscription import Subscription

from topicLoom.common.constants import BrokerConstants, ConnectionEvents, TimeConstants
from topicLoom.common.errors import (
    BrokerConnectionError,
    PublishWhileDisconnected,
    SubscribeError,
    UnsubscribeError,
)

from .base import BaseConnection, CompletionCallback, logger

_WILDCARDS_TO_NATS = {
    BrokerConstants.SINGLE_LEVEL_WILDCARD: "*",
    BrokerConstants.MULTI_LEVEL_WILDCARD: ">",
}


def topic_to_subject(topic: str) -> str:
    levels = topic.split(BrokerConstants.TOPIC_SEPARATOR)
    return ".".join(_WILDCARDS_TO_NATS.get(level, level) for level in levels)


def subject_to_topic(subject: str) -> str:
    return subject.replace(".", BrokerConstants.TOPIC_SEPARATOR)


class NatsConnection(BaseConnection):
    """nats-py client behind the BaseConnection interface."""

    reconnects_automatically = True

    def __init__(
        self,
        url: str,
        options: Optional[Dict[str, str]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        super().__init__(url, options, loop)
        self._nc: Optional[Client] = None
        self._subscriptions: Dict[str, Subscription] = {}
        self._connect_task: Optional[asyncio.Task] = None
        self._managed_tasks: List[asyncio.Task] = []
        # last queued subscribe/unsubscribe per topic; operations on a topic run in order
        self._topic_operations: Dict[str, asyncio.Task] = {}

    @property
    def connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    def start(self) -> None:
        self._connect_task = self._loop.create_task(
            self._connect(), name=f"nats_connect_{self.url}"
        )

    async def _connect(self) -> None:
        logger.info(f"Connecting to NATS server at {self.url}")
        connect_kwargs = {
            "servers": [self.url],
            "error_cb": self._on_error,
            "disconnected_cb": self._on_disconnected,
            "reconnected_cb": self._on_reconnected,
        }
        if self.options.get("username"):
            connect_kwargs["user"] = self.options["username"]
            connect_kwargs["password"] = self.options.get("password")
        if self.options.get("client_id"):
            connect_kwargs["name"] = self.options["client_id"]

        try:
            self._nc = await nats.connect(**connect_kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to connect to NATS at {self.url}: {e}")
            self._emit(ConnectionEvents.ERROR, BrokerConnectionError(str(e)))
            return

        logger.info(f"Connected to NATS server at {self.url}")
        self._emit(ConnectionEvents.CONNECT)

    async def close(self) -> None:
        self._closing = True
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()

        for task in self._managed_tasks:
            if not task.done():
                task.cancel()
        if self._managed_tasks:
            await asyncio.gather(*self._managed_tasks, return_exceptions=True)
        self._managed_tasks.clear()
        self._topic_operations.clear()
        self._subscriptions.clear()

        if self._nc and not self._nc.is_closed:
            try:
                await asyncio.wait_for(self._nc.close(), timeout=TimeConstants.CLOSE_TIMEOUT)
                logger.info("NATS connection closed.")
            except Exception as e:
                logger.warning(f"Error closing NATS connection: {e}")
        self._nc = None

    def _create_managed_task(self, awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Create a task tracked for cleanup on close."""
        task = self._loop.create_task(awaitable, name=name)
        self._managed_tasks.append(task)
        task.add_done_callback(self._forget_task)
        return task

    def _forget_task(self, task: asyncio.Task) -> None:
        if task in self._managed_tasks:
            self._managed_tasks.remove(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Task '{task.get_name()}' failed: {task.exception()}")

    def _queue_topic_operation(
        self, topic: str, operation: Callable[[], Awaitable[None]], name: str
    ) -> asyncio.Task:
        """Run ``operation`` once every earlier operation on ``topic`` has finished."""
        previous = self._topic_operations.get(topic)
        task = self._create_managed_task(self._run_after(previous, operation), name=name)
        self._topic_operations[topic] = task
        task.add_done_callback(functools.partial(self._release_topic, topic))
        return task

    @staticmethod
    async def _run_after(
        previous: Optional[asyncio.Task], operation: Callable[[], Awaitable[None]]
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        await operation()

    def _release_topic(self, topic: str, task: asyncio.Task) -> None:
        if self._topic_operations.get(topic) is task:
            del self._topic_operations[topic]

    def subscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        if not self.connected:
            self._complete(callback, SubscribeError(topic, "not connected"))
            return
        self._queue_topic_operation(
            topic,
            functools.partial(self._subscribe, topic, callback),
            name=f"nats_subscribe_{topic}",
        )

    async def _subscribe(self, topic: str, callback: Optional[CompletionCallback]) -> None:
        if topic in self._subscriptions:
            self._complete(callback)
            return
        try:
            sub = await self._nc.subscribe(topic_to_subject(topic), cb=self._on_message)
        except Exception as e:
            self._complete(callback, SubscribeError(topic, e))
            return
        self._subscriptions[topic] = sub
        self._complete(callback)

    def unsubscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        if not self.connected:
            self._complete(callback, UnsubscribeError(topic, "not connected"))
            return
        self._queue_topic_operation(
            topic,
            functools.partial(self._unsubscribe, topic, callback),
            name=f"nats_unsubscribe_{topic}",
        )

    async def _unsubscribe(self, topic: str, callback: Optional[CompletionCallback]) -> None:
        sub = self._subscriptions.pop(topic, None)
        if sub is None:
            self._complete(callback)
            return
        try:
            await sub.unsubscribe()
        except Exception as e:
            self._complete(callback, UnsubscribeError(topic, e))
            return
        self._complete(callback)

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> None:
        if not self.connected:
            raise PublishWhileDisconnected(f"Cannot publish to '{topic}': not connected")
        data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        self._create_managed_task(
            self._nc.publish(topic_to_subject(topic), data), name=f"nats_publish_{topic}"
        )

    async def _on_message(self, msg: Msg) -> None:
        payload = msg.data.decode("utf-8", errors="replace") if msg.data else ""
        self._emit(ConnectionEvents.MESSAGE, subject_to_topic(msg.subject), payload)

    async def _on_error(self, e: Exception) -> None:
        logger.warning(f"NATS error: {e}")
        self._emit(ConnectionEvents.ERROR, BrokerConnectionError(str(e)))

    async def _on_disconnected(self) -> None:
        self._emit(ConnectionEvents.OFFLINE)

    async def _on_reconnected(self) -> None:
        # server-side interest is gone after a reconnect; consumers re-register
        self._subscriptions.clear()
        self._emit(ConnectionEvents.CONNECT)
