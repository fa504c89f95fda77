"""
Broker configuration and type conversion utilities.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Type

from topicLoom.common.constants import BrokerConstants, MatchingConstants
from topicLoom.common.errors import ConfigError


class TypeConverter:
    """Handles type validation and conversion for configuration values."""

    @staticmethod
    def validate_and_convert_value(
        config_key: str, value: Any, expected_type: Type
    ) -> Any:
        """Validate and convert a configuration value to the expected type.

        Args:
            config_key: The configuration parameter name
            value: The value to convert
            expected_type: The expected type for the value

        Returns:
            The converted value

        Raises:
            ConfigError: If the value cannot be converted to the expected type
        """
        if isinstance(value, expected_type) and not (
            expected_type is int and isinstance(value, bool)
        ):
            return value

        try:
            if expected_type == bool:
                if isinstance(value, str):
                    return value.strip().lower() in ("true", "1", "yes", "on")
                return bool(value)
            elif expected_type == int:
                return int(float(value))  # Handle "1883.0" -> 1883
            elif expected_type == float:
                return float(value)
            elif expected_type == str:
                return str(value)
            else:
                return expected_type(value)
        except (ValueError, TypeError) as e:
            raise ConfigError(
                f"Cannot convert value '{value}' to expected type {expected_type.__name__} "
                f"for config parameter '{config_key}': {e}"
            )


@dataclass
class BrokerConfig:
    """Connection settings for one broker, as entered in the host's config form."""

    protocol: str = BrokerConstants.DEFAULT_PROTOCOL
    broker_ip: str = BrokerConstants.DEFAULT_HOST
    port: int = BrokerConstants.DEFAULT_PORT
    user: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
    topic_matching: str = MatchingConstants.EXACT

    _FIELD_TYPES = {
        "protocol": str,
        "broker_ip": str,
        "port": int,
        "user": str,
        "password": str,
        "client_id": str,
        "topic_matching": str,
    }

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.protocol not in BrokerConstants.PROTOCOLS:
            raise ConfigError(
                f"Unsupported protocol '{self.protocol}'. "
                f"Expected one of {BrokerConstants.PROTOCOLS}"
            )
        if not self.broker_ip:
            raise ConfigError("Broker address must not be empty")
        if not BrokerConstants.MIN_PORT <= self.port <= BrokerConstants.MAX_PORT:
            raise ConfigError(
                f"Port {self.port} out of range "
                f"{BrokerConstants.MIN_PORT}-{BrokerConstants.MAX_PORT}"
            )
        if self.topic_matching not in MatchingConstants.STRATEGIES:
            raise ConfigError(
                f"Unknown topic matching strategy '{self.topic_matching}'. "
                f"Expected one of {MatchingConstants.STRATEGIES}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrokerConfig":
        """Build a config from loosely typed form values; unknown keys are ignored."""
        kwargs = {}
        for key, expected_type in cls._FIELD_TYPES.items():
            value = data.get(key)
            if value is None or value == "":
                continue
            kwargs[key] = TypeConverter.validate_and_convert_value(
                key, value, expected_type
            )
        return cls(**kwargs)

    @property
    def url(self) -> str:
        return f"{self.protocol}{self.broker_ip}:{self.port}"

    @property
    def is_mqtt(self) -> bool:
        return self.protocol in BrokerConstants.MQTT_PROTOCOLS

    def connect_options(self) -> Dict[str, str]:
        """Credentials and client identity to hand to the transport."""
        options = {
            "username": self.user,
            "password": self.password,
            "client_id": self.client_id,
        }
        return {key: value for key, value in options.items() if value}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __repr__(self) -> str:
        password_str = "***REDACTED***" if self.password else None
        return (
            f"BrokerConfig(protocol={self.protocol!r}, broker_ip={self.broker_ip!r}, "
            f"port={self.port}, user={self.user!r}, password={password_str!r}, "
            f"client_id={self.client_id!r}, topic_matching={self.topic_matching!r})"
        )

    __str__ = __repr__
