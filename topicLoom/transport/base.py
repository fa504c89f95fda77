"""
Broker connection interface.

A connection wraps one transport client and reports everything back on the
owning asyncio loop: the ``connect``, ``error``, ``offline`` and ``message``
events, and the completion callbacks of subscribe/unsubscribe requests.
Transport errors reach callers as exception instances, never as raises from
subscribe or unsubscribe.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from topicLoom.common.constants import ConnectionEvents, LoggerConstants
from topicLoom.common.errors import TopicLoomError
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.log_utils.logger import setup_logger

logger = setup_logger(
    name="topicLoom_transport", log_file=LoggerConstants.TOPICLOOM_TRANSPORT_LOG_FILE
)

CompletionCallback = Callable[[Optional[TopicLoomError]], None]


class BaseConnection(ABC):
    """Abstract broker connection."""

    # whether the client library re-establishes a dropped session by itself
    reconnects_automatically: bool = False

    def __init__(
        self,
        url: str,
        options: Optional[Dict[str, str]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.url = url
        self.options = dict(options or {})
        self._loop = loop or asyncio.get_running_loop()
        self._event_handlers = HandlerRegistry(
            f"connection[{url}]", allowed_keys=ConnectionEvents.ALL
        )
        self._closing = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def set_event_handler(self, event: str, handler: Callable) -> None:
        """Route one of the ``ConnectionEvents`` to ``handler``."""
        self._event_handlers.register_handler(event, handler)

    def _emit(self, event: str, *args) -> None:
        if self._closing:
            logger.debug(f"Ignoring '{event}' event on closing connection to {self.url}")
            return
        self._event_handlers.notify(event, *args)

    def _emit_threadsafe(self, event: str, *args) -> None:
        """Hand an event from a transport thread over to the owning loop."""
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._emit, event, *args)

    @staticmethod
    def _complete(
        callback: Optional[CompletionCallback], error: Optional[TopicLoomError] = None
    ) -> None:
        if callback is None:
            return
        try:
            callback(error)
        except Exception as e:
            logger.exception(f"Completion callback raised: {e}")

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the transport currently has a live broker session."""

    @abstractmethod
    def start(self) -> None:
        """Begin connecting; the outcome arrives as a connect or error event."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the connection down. No events are emitted afterwards."""

    @abstractmethod
    def subscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        ...

    @abstractmethod
    def unsubscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        ...

    @abstractmethod
    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> None:
        """Send a message; raises PublishWhileDisconnected without a session."""
