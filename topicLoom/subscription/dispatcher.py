"""
Inbound message fan-out.

Each broker message updates the value cache and is routed to the interests
registered for its topic: variable interests get their extracted value
pushed to the host's variable store in one batch, feedback interests are
only flagged for a recheck so that the comparison runs when the host
actually renders them.
"""

from typing import Any, Dict, Iterable, List, Optional

from topicLoom.common.constants import HandlerConstants
from topicLoom.common.errors import ExtractionError
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.common.status_types import Interest
from topicLoom.log_utils.logger import setup_logger
from topicLoom.values.extractor import extract, to_output_value

from .cache import ValueCache
from .registry import TopicSubscriptionRegistry

logger = setup_logger(name="message_dispatcher")


class MessageDispatcher:
    def __init__(
        self,
        registry: TopicSubscriptionRegistry,
        host_handlers: HandlerRegistry,
        cache: Optional[ValueCache] = None,
    ):
        self._registry = registry
        self._cache = cache if cache is not None else registry.cache
        self._host_handlers = host_handlers
        self.messages_dropped = 0

    def handle_message(self, topic: str, payload: Any) -> bool:
        """Record and route one inbound message. Never raises.

        Returns False when the message was dropped because nothing is
        registered for its topic.
        """
        try:
            if not topic:
                return False
            if isinstance(payload, (bytes, bytearray)):
                payload = payload.decode("utf-8", errors="replace")
            elif payload is None:
                payload = ""

            logger.debug(f"Message received on '{topic}': {payload[:100]!r}")

            interests = self._registry.lookup(topic)
            if not interests:
                # In-flight message for a topic that was just unsubscribed
                self.messages_dropped += 1
                logger.debug(f"Dropping message on '{topic}': no interests registered")
                return False

            self._cache.record(topic, payload)
            self.deliver(topic, payload, interests)
            return True
        except Exception as e:
            logger.exception(f"Handle message failed for topic '{topic}': {e}")
            return False

    def deliver(self, topic: str, payload: str, interests: Iterable[Interest]) -> None:
        """Route ``payload`` to ``interests``; also used to backfill new interests."""
        new_values: Dict[str, Any] = {}
        feedback_ids: List[str] = []

        for interest in interests:
            if interest.is_variable:
                if not interest.variable_name:
                    logger.warning(
                        f"Variable interest '{interest.id}' on '{topic}' has no variable name"
                    )
                    continue
                try:
                    value = extract(payload, interest.path)
                except ExtractionError as e:
                    logger.warning(
                        f"Skipping '{interest.id}' for message on '{topic}': {e}"
                    )
                    continue
                new_values[interest.variable_name] = to_output_value(value)
            elif interest.id not in feedback_ids:
                feedback_ids.append(interest.id)

        if feedback_ids:
            self._host_handlers.notify(HandlerConstants.CHECK_FEEDBACKS, *feedback_ids)
        if new_values:
            self._host_handlers.notify(HandlerConstants.SET_VARIABLES, new_values)
