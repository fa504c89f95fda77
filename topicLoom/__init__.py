"""topicLoom - Reference-counted broker topic subscriptions with last-value fan-out."""

__version__ = "0.1.0"

from topicLoom.bridge.bridge import TopicBridge
from topicLoom.common.config import BrokerConfig
from topicLoom.common.status_types import ConnectionStatus, Interest, InterestKind
from topicLoom.values.comparison import compare
from topicLoom.values.extractor import extract

__all__ = [
    "BrokerConfig",
    "ConnectionStatus",
    "Interest",
    "InterestKind",
    "TopicBridge",
    "compare",
    "extract",
]
