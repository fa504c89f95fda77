"""
The topicLoom bridge: one instance per broker connection.

Wires the subscription registry, value cache, dispatcher and variable
definition publisher to a connection lifecycle manager, and exposes both the
core interface (register, unregister, resubscribe_all, get_cached_value,
publish) and the consumer adapters a host uses for variable and feedback
subscriptions.
"""

import asyncio
from typing import Callable, List, Optional, Tuple

from topicLoom.common.config import BrokerConfig
from topicLoom.common.constants import HandlerConstants, LoggerConstants, TimeConstants
from topicLoom.common.errors import ExtractionError
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.common.status_types import ConnectionStatus, Interest, VariableDefinition
from topicLoom.log_utils.logger import setup_logger
from topicLoom.subscription.cache import ValueCache
from topicLoom.subscription.dispatcher import MessageDispatcher
from topicLoom.subscription.matcher import create_matcher
from topicLoom.subscription.publishers import VariableDefinitionPublisher
from topicLoom.subscription.registry import TopicSubscriptionRegistry
from topicLoom.transport import create_connection
from topicLoom.values.comparison import compare
from topicLoom.values.extractor import extract

from .lifecycle import ConnectionFactory, ConnectionLifecycleManager

logger = setup_logger(
    name="topicLoom_bridge", log_file=LoggerConstants.TOPICLOOM_BRIDGE_LOG_FILE
)


class TopicBridge:
    """Topic subscriptions and value propagation for a single broker."""

    def __init__(
        self,
        config: Optional[BrokerConfig] = None,
        connection_factory: ConnectionFactory = create_connection,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        debounce: float = TimeConstants.VARIABLE_DEBOUNCE,
        retry_backoff: float = TimeConstants.RECONNECT_BACKOFF,
        publish_wait: float = TimeConstants.PUBLISH_RECONNECT_WAIT,
    ) -> None:
        self.config = config or BrokerConfig()
        self.host_handlers = HandlerRegistry(
            "topicLoom_host", allowed_keys=HandlerConstants.HOST_HANDLERS
        )

        self.lifecycle = ConnectionLifecycleManager(
            self.config,
            self.host_handlers,
            connection_factory=connection_factory,
            loop=loop,
            retry_backoff=retry_backoff,
            publish_wait=publish_wait,
        )
        self.cache = ValueCache()
        self.registry = TopicSubscriptionRegistry(
            subscriber=self.lifecycle,
            cache=self.cache,
            matcher=create_matcher(self.config.topic_matching),
        )
        self.dispatcher = MessageDispatcher(self.registry, self.host_handlers, self.cache)
        self.variable_publisher = VariableDefinitionPublisher(
            self.registry, self.host_handlers, wait=debounce, loop=loop
        )

        self.registry.set_backfill_handler(self.dispatcher.deliver)
        self.registry.set_variables_changed_callback(self.variable_publisher.trigger)
        self.lifecycle.set_message_handler(self.dispatcher.handle_message)
        self.lifecycle.set_connected_callback(self.resubscribe_all)

        logger.info(f"TopicBridge initialized for {self.config}")

    def set_host_handler(self, key: str, handler: Callable) -> None:
        """Register one of the host collaborators listed in ``HandlerConstants.HOST_HANDLERS``."""
        self.host_handlers.register_handler(key, handler)

    @property
    def status(self) -> ConnectionStatus:
        return self.lifecycle.status

    @property
    def connected(self) -> bool:
        return self.lifecycle.connected

    async def initialize(self) -> None:
        """Open the broker connection."""
        self.lifecycle.start()

    async def update_config(self, config: BrokerConfig) -> None:
        """Apply a new configuration and re-establish the connection."""
        self.config = config
        if config.topic_matching != self.registry.matcher.name:
            self.registry.set_matcher(create_matcher(config.topic_matching))
        await self.lifecycle.update_config(config)

    async def destroy(self) -> None:
        """Tear down: no debounced publish and no reconnect fire after this."""
        logger.info("Destroying TopicBridge")
        self.variable_publisher.close()
        await self.lifecycle.stop()
        self.cache.clear()

    # Core interface

    def register(self, topic: str, interest: Interest) -> None:
        self.registry.register(topic, interest)

    def unregister(self, topic: str, interest_id: str) -> bool:
        return self.registry.unregister(topic, interest_id)

    def resubscribe_all(self) -> List[str]:
        """Drop every subscription, then have consumers register again.

        The host's ``subscribe_feedbacks`` handler is asked to re-register its
        consumers; without one, the interests that were cleared are replayed.
        """
        snapshot = self.registry.snapshot()
        topics = self.registry.resubscribe_all()

        if self.host_handlers.has_handler(HandlerConstants.SUBSCRIBE_FEEDBACKS):
            self.host_handlers.notify(HandlerConstants.SUBSCRIBE_FEEDBACKS)
        else:
            self._replay(snapshot)
        return topics

    def _replay(self, snapshot: List[Tuple[str, Interest]]) -> None:
        for topic, interest in snapshot:
            try:
                self.registry.register(topic, interest)
            except Exception as e:
                logger.exception(f"Failed to re-register '{interest.id}' on '{topic}': {e}")

    def get_cached_value(self, topic: str) -> Optional[str]:
        return self.registry.get_cached_value(topic)

    async def publish(
        self, topic: str, payload: str, qos: int = 0, retain: bool = False
    ) -> bool:
        if not topic:
            logger.warning("Ignoring publish with empty topic")
            return False
        return await self.lifecycle.publish(topic, payload, qos=qos, retain=retain)

    # Consumer adapters

    def subscribe_variable(
        self, consumer_id: str, topic: str, variable_name: str, path: str = ""
    ) -> Interest:
        interest = Interest.variable(consumer_id, variable_name, path)
        self.register(topic, interest)
        return interest

    def subscribe_feedback(self, consumer_id: str, topic: str, path: str = "") -> Interest:
        interest = Interest.feedback(consumer_id, path)
        self.register(topic, interest)
        return interest

    def unsubscribe_consumer(self, consumer_id: str, topic: str) -> bool:
        return self.unregister(topic, consumer_id)

    def check_feedback(self, topic: str, path: str, comparison: str, value: str) -> bool:
        """Evaluate a boolean feedback against the cached value for ``topic``."""
        payload = self.get_cached_value(topic)
        if payload is None:
            return False
        try:
            current = extract(payload, path)
        except ExtractionError as e:
            logger.warning(f"Feedback on '{topic}' could not read its value: {e}")
            return False
        return compare(current, value, comparison)

    def variable_definitions(self) -> List[VariableDefinition]:
        return self.registry.variable_definitions()
