"""
Last-value cache keyed by topic.
"""

from typing import Dict, List, Optional


class ValueCache:
    """Holds the last raw payload seen for each subscribed topic."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    def record(self, topic: str, payload: str) -> None:
        # re-insert so iteration order is oldest to newest write
        self._values.pop(topic, None)
        self._values[topic] = payload

    def get(self, topic: str) -> Optional[str]:
        return self._values.get(topic)

    def has(self, topic: str) -> bool:
        return topic in self._values

    def evict(self, topic: str) -> bool:
        """Drop the cached value for ``topic``; returns whether one existed."""
        return self._values.pop(topic, None) is not None

    def topics(self) -> List[str]:
        """Cached topics, least recently written first."""
        return list(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, topic: str) -> bool:
        return topic in self._values
