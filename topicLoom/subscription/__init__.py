"""
Topic subscription registry, value cache and message fan-out.
"""

from topicLoom.subscription.cache import ValueCache
from topicLoom.subscription.dispatcher import MessageDispatcher
from topicLoom.subscription.matcher import (
    ExactMatcher,
    TopicMatcher,
    WildcardMatcher,
    create_matcher,
)
from topicLoom.subscription.publishers import VariableDefinitionPublisher
from topicLoom.subscription.registry import TopicSubscriptionRegistry

__all__ = [
    "ExactMatcher",
    "MessageDispatcher",
    "TopicMatcher",
    "TopicSubscriptionRegistry",
    "ValueCache",
    "VariableDefinitionPublisher",
    "WildcardMatcher",
    "create_matcher",
]
