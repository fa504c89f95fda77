"""
Topic matching strategies used by the subscription registry.

``exact`` treats every registered topic as a literal string. ``wildcard``
treats registered topics as MQTT filters, where ``+`` matches one level and
a trailing ``#`` matches the remaining levels (including none).
"""

from abc import ABC, abstractmethod

from topicLoom.common.constants import BrokerConstants, MatchingConstants
from topicLoom.common.errors import ConfigError


class TopicMatcher(ABC):
    name: str = ""

    @abstractmethod
    def matches(self, pattern: str, topic: str) -> bool:
        """Whether an inbound ``topic`` is covered by a registered ``pattern``."""

    def is_pattern(self, pattern: str) -> bool:
        """Whether ``pattern`` can match more than one literal topic."""
        return False


class ExactMatcher(TopicMatcher):
    name = MatchingConstants.EXACT

    def matches(self, pattern: str, topic: str) -> bool:
        return pattern == topic


class WildcardMatcher(TopicMatcher):
    name = MatchingConstants.WILDCARD

    def matches(self, pattern: str, topic: str) -> bool:
        if pattern == topic:
            return True

        separator = BrokerConstants.TOPIC_SEPARATOR
        pattern_levels = pattern.split(separator)
        topic_levels = topic.split(separator)

        # Topics starting with $ are not matched by a leading wildcard
        if topic.startswith("$") and pattern_levels[0] in (
            BrokerConstants.SINGLE_LEVEL_WILDCARD,
            BrokerConstants.MULTI_LEVEL_WILDCARD,
        ):
            return False

        for index, level in enumerate(pattern_levels):
            if level == BrokerConstants.MULTI_LEVEL_WILDCARD:
                return index == len(pattern_levels) - 1
            if index >= len(topic_levels):
                return False
            if level != BrokerConstants.SINGLE_LEVEL_WILDCARD and level != topic_levels[index]:
                return False

        return len(pattern_levels) == len(topic_levels)

    def is_pattern(self, pattern: str) -> bool:
        levels = pattern.split(BrokerConstants.TOPIC_SEPARATOR)
        return (
            BrokerConstants.SINGLE_LEVEL_WILDCARD in levels
            or BrokerConstants.MULTI_LEVEL_WILDCARD in levels
        )


def create_matcher(strategy: str = MatchingConstants.EXACT) -> TopicMatcher:
    if strategy == MatchingConstants.EXACT:
        return ExactMatcher()
    if strategy == MatchingConstants.WILDCARD:
        return WildcardMatcher()
    raise ConfigError(f"Unknown topic matching strategy: {strategy}")
