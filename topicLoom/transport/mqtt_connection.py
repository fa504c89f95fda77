"""
MQTT transport built on paho-mqtt.

paho runs its network loop on a background thread; every paho callback is
handed over to the asyncio loop before touching any topicLoom state.
"""

import asyncio
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

from topicLoom.common.constants import BrokerConstants, ConnectionEvents, TimeConstants
from topicLoom.common.errors import (
    BrokerConnectionError,
    PublishWhileDisconnected,
    SubscribeError,
    UnsubscribeError,
)

from .base import BaseConnection, CompletionCallback, logger

_DEFAULT_PORTS = {
    "mqtt://": 1883,
    "mqtts://": 8883,
    "ws://": 80,
    "wss://": 443,
}


class MqttConnection(BaseConnection):
    """paho-mqtt client behind the BaseConnection interface."""

    # paho's network loop reconnects after loop_start
    reconnects_automatically = True

    def __init__(
        self,
        url: str,
        options: Optional[Dict[str, str]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        super().__init__(url, options, loop)
        parsed = urlparse(url)
        self.protocol = f"{parsed.scheme}://"
        if self.protocol not in BrokerConstants.MQTT_PROTOCOLS:
            raise ValueError(f"Not an MQTT url: {url}")
        self.host = parsed.hostname or BrokerConstants.DEFAULT_HOST
        self.port = parsed.port or _DEFAULT_PORTS[self.protocol]

        transport = (
            "websockets" if self.protocol in BrokerConstants.WEBSOCKET_PROTOCOLS else "tcp"
        )
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.options.get("client_id", ""),
            transport=transport,
        )
        if self.protocol in BrokerConstants.TLS_PROTOCOLS:
            self._client.tls_set()
        if self.options.get("username"):
            self._client.username_pw_set(
                self.options["username"], self.options.get("password")
            )

        self._client.on_connect = self._on_connect
        self._client.on_connect_fail = self._on_connect_fail
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.on_subscribe = self._on_subscribe
        self._client.on_unsubscribe = self._on_unsubscribe

        # mid -> (topic, completion callback)
        self._pending_subscribes: Dict[int, Tuple[str, Optional[CompletionCallback]]] = {}
        self._pending_unsubscribes: Dict[int, Tuple[str, Optional[CompletionCallback]]] = {}

    @property
    def connected(self) -> bool:
        return self._client.is_connected()

    def start(self) -> None:
        logger.info(f"Connecting to MQTT broker at {self.host}:{self.port} ({self.protocol})")
        self._client.connect_async(self.host, self.port, keepalive=TimeConstants.KEEPALIVE)
        self._client.loop_start()

    async def close(self) -> None:
        self._closing = True
        try:
            if self._client.is_connected():
                self._client.disconnect()
            await asyncio.wait_for(
                self._loop.run_in_executor(None, self._client.loop_stop),
                timeout=TimeConstants.CLOSE_TIMEOUT,
            )
            logger.info(f"MQTT connection to {self.host}:{self.port} closed")
        except asyncio.TimeoutError:
            logger.warning(f"Timed out stopping MQTT network loop for {self.host}:{self.port}")
        except Exception as e:
            logger.warning(f"Error closing MQTT connection: {e}")
        finally:
            self._pending_subscribes.clear()
            self._pending_unsubscribes.clear()

    def subscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        result, mid = self._client.subscribe(topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._complete(callback, SubscribeError(topic, mqtt.error_string(result)))
            return
        self._pending_subscribes[mid] = (topic, callback)

    def unsubscribe(self, topic: str, callback: Optional[CompletionCallback] = None) -> None:
        result, mid = self._client.unsubscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._complete(callback, UnsubscribeError(topic, mqtt.error_string(result)))
            return
        self._pending_unsubscribes[mid] = (topic, callback)

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> None:
        if not self.connected:
            raise PublishWhileDisconnected(f"Cannot publish to '{topic}': not connected")
        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc == mqtt.MQTT_ERR_NO_CONN:
            raise PublishWhileDisconnected(f"Cannot publish to '{topic}': not connected")
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerConnectionError(
                f"Publish to '{topic}' failed: {mqtt.error_string(info.rc)}"
            )

    # paho callbacks, called on the paho network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            self._emit_threadsafe(
                ConnectionEvents.ERROR,
                BrokerConnectionError(f"Connection refused: {reason_code}"),
            )
        else:
            self._emit_threadsafe(ConnectionEvents.CONNECT)

    def _on_connect_fail(self, client, userdata) -> None:
        self._emit_threadsafe(
            ConnectionEvents.ERROR,
            BrokerConnectionError(f"Connection to {self.host}:{self.port} failed"),
        )

    def _on_disconnect(
        self, client, userdata, disconnect_flags, reason_code, properties=None
    ) -> None:
        self._emit_threadsafe(ConnectionEvents.OFFLINE)

    def _on_message(self, client, userdata, msg) -> None:
        payload = msg.payload.decode("utf-8", errors="replace") if msg.payload else ""
        self._emit_threadsafe(ConnectionEvents.MESSAGE, msg.topic, payload)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._finish_subscribe, mid, reason_code_list)

    def _on_unsubscribe(self, client, userdata, mid, reason_code_list, properties=None) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._finish_unsubscribe, mid, reason_code_list)

    # completion, on the asyncio loop

    def _finish_subscribe(self, mid: int, reason_code_list) -> None:
        topic, callback = self._pending_subscribes.pop(mid, (None, None))
        if topic is None:
            return
        failures = [rc for rc in (reason_code_list or []) if rc.is_failure]
        self._complete(callback, SubscribeError(topic, failures[0]) if failures else None)

    def _finish_unsubscribe(self, mid: int, reason_code_list) -> None:
        topic, callback = self._pending_unsubscribes.pop(mid, (None, None))
        if topic is None:
            return
        failures = [rc for rc in (reason_code_list or []) if rc.is_failure]
        self._complete(callback, UnsubscribeError(topic, failures[0]) if failures else None)
