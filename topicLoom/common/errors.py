"""
Error kinds raised and reported by topicLoom.

Transport errors (subscribe, unsubscribe, connection) are handed to callbacks
and logged; they are not raised across the registry or dispatcher. Extraction
errors are raised by the value extractor and caught by whoever evaluates the
value.
"""


class TopicLoomError(Exception):
    """Base class for all topicLoom errors."""


class ConfigError(TopicLoomError):
    """Raised when broker configuration values are invalid."""


class SubscribeError(TopicLoomError):
    """The broker rejected or failed a subscribe request."""

    def __init__(self, topic: str, reason: object = None):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Failed to subscribe to topic: {topic}. Error: {reason}")


class UnsubscribeError(TopicLoomError):
    """The broker rejected or failed an unsubscribe request."""

    def __init__(self, topic: str, reason: object = None):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Failed to unsubscribe from topic: {topic}. Error: {reason}")


class BrokerConnectionError(TopicLoomError):
    """Transport-level connection failure."""


class PublishWhileDisconnected(TopicLoomError):
    """A publish was attempted while no broker connection was available."""


class ExtractionError(TopicLoomError):
    """A value could not be extracted from a payload."""


class MalformedPayloadError(ExtractionError):
    """The payload is not valid JSON but a structured path was requested."""

    def __init__(self, payload: str, reason: object = None):
        self.payload = payload
        super().__init__(f"Payload is not valid JSON ({reason}): {payload[:100]!r}")


class PathNotFoundError(ExtractionError):
    """The structured path does not resolve against the parsed payload."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path not found in payload: {path}")
