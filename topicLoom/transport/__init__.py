"""
Broker transports.

``connect`` picks the transport from the url scheme: ``mqtt://``,
``mqtts://``, ``ws://`` and ``wss://`` use paho-mqtt, ``nats://`` and
``tls://`` use nats-py.
"""

import asyncio
from typing import Dict, Optional
from urllib.parse import urlparse

from topicLoom.common.constants import BrokerConstants
from topicLoom.common.errors import ConfigError
from topicLoom.transport.base import BaseConnection


def create_connection(
    url: str,
    options: Optional[Dict[str, str]] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> BaseConnection:
    """Build an unstarted connection for ``url``."""
    protocol = f"{urlparse(url).scheme}://"
    if protocol in BrokerConstants.MQTT_PROTOCOLS:
        from topicLoom.transport.mqtt_connection import MqttConnection

        return MqttConnection(url, options, loop)
    if protocol in BrokerConstants.NATS_PROTOCOLS:
        from topicLoom.transport.nats_connection import NatsConnection

        return NatsConnection(url, options, loop)
    raise ConfigError(f"Unsupported broker protocol in url: {url}")


def connect(
    url: str,
    options: Optional[Dict[str, str]] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> BaseConnection:
    """Build and start a connection for ``url``."""
    connection = create_connection(url, options, loop)
    connection.start()
    return connection


__all__ = ["BaseConnection", "connect", "create_connection"]
