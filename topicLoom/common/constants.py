class LoggerConstants:
    TOPICLOOM_BRIDGE_LOG_FILE: str = "./topicLoom/log_utils/topicLoom_bridge.log"
    TOPICLOOM_TRANSPORT_LOG_FILE: str = "./topicLoom/log_utils/topicLoom_transport.log"
    TOPICLOOM_CLI_LOG_FILE: str = "./topicLoom/log_utils/topicLoom_cli.log"
    FORMAT_LOG: bool = False


class TimeConstants:
    """All timing-related constants for topicLoom (seconds)."""

    # Coalescing window for variable-definition refreshes
    VARIABLE_DEBOUNCE: float = 0.1

    # Fixed backoff before retrying after a connection error
    RECONNECT_BACKOFF: float = 5.0

    # How long a publish waits for an implicit reconnect before dropping
    PUBLISH_RECONNECT_WAIT: float = 2.0

    # Transport shutdown
    CLOSE_TIMEOUT: float = 2.0

    # MQTT keepalive interval
    KEEPALIVE: int = 60


class BrokerConstants:
    """Broker addressing defaults and the protocols a connection may use."""

    DEFAULT_PROTOCOL: str = "mqtt://"
    DEFAULT_HOST: str = "localhost"
    DEFAULT_PORT: int = 1883
    MIN_PORT: int = 1
    MAX_PORT: int = 65535

    MQTT_PROTOCOLS = ["mqtt://", "mqtts://", "ws://", "wss://"]
    NATS_PROTOCOLS = ["nats://", "tls://"]
    PROTOCOLS = MQTT_PROTOCOLS + NATS_PROTOCOLS

    TLS_PROTOCOLS = ["mqtts://", "wss://"]
    WEBSOCKET_PROTOCOLS = ["ws://", "wss://"]

    QOS_LEVELS = (0, 1, 2)

    # MQTT topic wildcards
    SINGLE_LEVEL_WILDCARD: str = "+"
    MULTI_LEVEL_WILDCARD: str = "#"
    TOPIC_SEPARATOR: str = "/"


class MatchingConstants:
    EXACT: str = "exact"
    WILDCARD: str = "wildcard"
    STRATEGIES = [EXACT, WILDCARD]


class HandlerConstants:
    """Keys under which the host registers its collaborator callbacks."""

    SET_VARIABLES: str = "set_variables"
    CHECK_FEEDBACKS: str = "check_feedbacks"
    SET_VARIABLE_DEFINITIONS: str = "set_variable_definitions"
    STATUS: str = "status"
    SUBSCRIBE_FEEDBACKS: str = "subscribe_feedbacks"

    HOST_HANDLERS = [
        SET_VARIABLES,
        CHECK_FEEDBACKS,
        SET_VARIABLE_DEFINITIONS,
        STATUS,
        SUBSCRIBE_FEEDBACKS,
    ]


class ConnectionEvents:
    """Inbound events raised by a broker connection."""

    CONNECT: str = "connect"
    ERROR: str = "error"
    OFFLINE: str = "offline"
    MESSAGE: str = "message"

    ALL = [CONNECT, ERROR, OFFLINE, MESSAGE]


class ComparisonConstants:
    EQ: str = "eq"
    NE: str = "ne"
    LT: str = "lt"
    LTE: str = "lte"
    GT: str = "gt"
    GTE: str = "gte"

    CHOICES = {
        EQ: "=",
        NE: "!=",
        LT: "<",
        LTE: "<=",
        GT: ">",
        GTE: ">=",
    }


VARIABLE_LABEL_TEMPLATE = "MQTT value from topic: {topic}"
