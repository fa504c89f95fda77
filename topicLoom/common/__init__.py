"""
Common constants, configuration, errors and types for topicLoom.
"""

from topicLoom.common.config import BrokerConfig
from topicLoom.common.status_types import (
    ConnectionStatus,
    Interest,
    InterestKind,
    TopicEntry,
    VariableDefinition,
)

__all__ = [
    "BrokerConfig",
    "ConnectionStatus",
    "Interest",
    "InterestKind",
    "TopicEntry",
    "VariableDefinition",
]
