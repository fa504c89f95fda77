"""
Reference-counted topic subscription registry.

Maps each topic to the interests registered against it and keeps the broker
subscription set in step: the broker is asked to subscribe on the first
interest for a topic and to unsubscribe when the last one leaves. Broker
acknowledgements are only logged; the registry itself is the source of truth
for which topics are wanted.
"""

from typing import Callable, Dict, List, Optional, Protocol, Tuple

from topicLoom.common.errors import TopicLoomError
from topicLoom.common.status_types import Interest, TopicEntry, VariableDefinition
from topicLoom.log_utils.log_utils import log_and_raise_exception
from topicLoom.log_utils.logger import setup_logger

from .cache import ValueCache
from .matcher import ExactMatcher, TopicMatcher

logger = setup_logger(name="subscription_registry")

CompletionCallback = Callable[[Optional[TopicLoomError]], None]
BackfillHandler = Callable[[str, str, List[Interest]], None]


class TopicSubscriber(Protocol):
    """The narrow slice of a broker connection the registry is allowed to use."""

    def subscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        ...

    def unsubscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        ...


class TopicSubscriptionRegistry:
    """Tracks interests per topic and issues subscribe/unsubscribe on 0->1 and 1->0."""

    def __init__(
        self,
        subscriber: TopicSubscriber,
        cache: Optional[ValueCache] = None,
        matcher: Optional[TopicMatcher] = None,
    ):
        self._subscriber = subscriber
        self._cache = cache if cache is not None else ValueCache()
        self._matcher = matcher or ExactMatcher()
        self._entries: Dict[str, TopicEntry] = {}
        self._backfill_handler: Optional[BackfillHandler] = None
        self._variables_changed_callback: Optional[Callable[[], None]] = None

    @property
    def cache(self) -> ValueCache:
        return self._cache

    @property
    def matcher(self) -> TopicMatcher:
        return self._matcher

    def set_matcher(self, matcher: TopicMatcher) -> None:
        """Switch matching strategy; takes full effect after the next resubscribe."""
        self._matcher = matcher

    def set_backfill_handler(self, handler: BackfillHandler) -> None:
        """Set the function that delivers a cached payload to new interests."""
        self._backfill_handler = handler

    def set_variables_changed_callback(self, callback: Callable[[], None]) -> None:
        """Set the callback fired whenever a variable interest comes or goes."""
        self._variables_changed_callback = callback

    def register(self, topic: str, interest: Interest) -> None:
        """Add ``interest`` under ``topic``, subscribing on the first interest.

        Re-registering an id already present for the topic replaces it. When a
        value for the topic is cached, it is delivered to the interest straight
        away.
        """
        if not topic:
            log_and_raise_exception(
                logger, f"Cannot register interest '{interest.id}' on empty topic", ValueError
            )

        entry = self._entries.get(topic)
        if entry is None:
            entry = TopicEntry(topic=topic)
            self._entries[topic] = entry
            self._subscribe(topic)

        previous = entry.interests.get(interest.id)
        entry.interests[interest.id] = interest
        logger.debug(
            f"Registered {interest.kind.value} interest '{interest.id}' on topic '{topic}' "
            f"({len(entry)} interest(s))"
        )

        if interest.is_variable or (previous is not None and previous.is_variable):
            self._variables_changed()

        self._backfill(topic, interest)

    def unregister(self, topic: str, interest_id: str) -> bool:
        """Remove an interest; unknown topics or ids are ignored.

        Returns whether anything was removed.
        """
        entry = self._entries.get(topic)
        if entry is None or interest_id not in entry.interests:
            logger.debug(
                f"Ignoring unregister of '{interest_id}' from topic '{topic}': not registered"
            )
            return False

        removed = entry.interests.pop(interest_id)
        if not entry.interests:
            del self._entries[topic]
            self._evict(topic)
            self._unsubscribe(topic)

        if removed.is_variable:
            self._variables_changed()
        return True

    def resubscribe_all(self) -> List[str]:
        """Drop every broker subscription and forget all interests and cached values.

        Consumers are expected to register again afterwards. Returns the
        topics that were being tracked.
        """
        topics = list(self._entries)
        had_variables = any(
            interest.is_variable
            for entry in self._entries.values()
            for interest in entry.interests.values()
        )

        for topic in topics:
            self._unsubscribe(topic)

        self._entries.clear()
        self._cache.clear()
        logger.info(f"Cleared {len(topics)} topic subscription(s) for resubscribe")

        if had_variables:
            self._variables_changed()
        return topics

    def lookup(self, topic: str) -> List[Interest]:
        """All interests an inbound message on ``topic`` should be routed to."""
        entry = self._entries.get(topic)
        if not self._has_patterns():
            return list(entry.interests.values()) if entry else []

        interests: List[Interest] = []
        for pattern, candidate in self._entries.items():
            if self._matcher.matches(pattern, topic):
                interests.extend(candidate.interests.values())
        return interests

    def get_cached_value(self, topic: str) -> Optional[str]:
        """Cached payload for ``topic``.

        For a wildcard pattern this is the most recently received payload on
        any topic the pattern covers.
        """
        if not self._matcher.is_pattern(topic):
            return self._cache.get(topic)
        matching = self._cached_topics_for(topic)
        return self._cache.get(matching[-1]) if matching else None

    def get_entry(self, topic: str) -> Optional[TopicEntry]:
        return self._entries.get(topic)

    def snapshot(self) -> List[Tuple[str, Interest]]:
        """Every (topic, interest) pair currently registered."""
        return [
            (topic, interest)
            for topic, entry in self._entries.items()
            for interest in entry.interests.values()
        ]

    def variable_definitions(self) -> List[VariableDefinition]:
        """Full rebuild of the variable definitions from every variable interest."""
        definitions = []
        for topic, entry in self._entries.items():
            for interest in entry.interests.values():
                if interest.is_variable and interest.variable_name:
                    definitions.append(
                        VariableDefinition.for_topic(interest.variable_name, topic)
                    )
        return definitions

    def __contains__(self, topic: str) -> bool:
        return topic in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _has_patterns(self) -> bool:
        return any(self._matcher.is_pattern(topic) for topic in self._entries)

    def _cached_topics_for(self, topic: str) -> List[str]:
        if not self._matcher.is_pattern(topic):
            return [topic] if topic in self._cache else []
        return [
            cached for cached in self._cache.topics() if self._matcher.matches(topic, cached)
        ]

    def _backfill(self, topic: str, interest: Interest) -> None:
        if self._backfill_handler is None:
            return
        for cached_topic in self._cached_topics_for(topic):
            payload = self._cache.get(cached_topic)
            if payload is None:
                continue
            logger.debug(f"Backfilling '{interest.id}' from cached value of '{cached_topic}'")
            try:
                self._backfill_handler(cached_topic, payload, [interest])
            except Exception as e:
                logger.exception(f"Backfill of '{interest.id}' on '{cached_topic}' failed: {e}")

    def _evict(self, topic: str) -> None:
        for cached_topic in self._cached_topics_for(topic):
            still_wanted = any(
                self._matcher.matches(pattern, cached_topic) for pattern in self._entries
            )
            if not still_wanted:
                self._cache.evict(cached_topic)
                logger.debug(f"Pruned cached value for topic: {cached_topic}")

    def _variables_changed(self) -> None:
        if self._variables_changed_callback is not None:
            self._variables_changed_callback()

    def _subscribe(self, topic: str) -> None:
        def on_subscribed(error: Optional[TopicLoomError] = None) -> None:
            if error is None:
                logger.debug(f"Successfully subscribed to topic: {topic}")
            else:
                logger.warning(f"Failed to subscribe to topic: {topic}. Error: {error}")

        try:
            self._subscriber.subscribe(topic, on_subscribed)
        except Exception as e:
            logger.warning(f"Failed to subscribe to topic: {topic}. Error: {e}")

    def _unsubscribe(self, topic: str) -> None:
        def on_unsubscribed(error: Optional[TopicLoomError] = None) -> None:
            if error is None:
                logger.debug(f"Successfully unsubscribed from topic: {topic}")
            else:
                logger.warning(f"Failed to unsubscribe from topic: {topic}. Error: {error}")

        try:
            self._subscriber.unsubscribe(topic, on_unsubscribed)
        except Exception as e:
            logger.warning(f"Failed to unsubscribe from topic: {topic}. Error: {e}")
