"""MQTT publisher built on paho-mqtt.

The client connects asynchronously when the daemon starts and keeps its
network loop running in paho's background thread, reconnecting on its own,
for the whole process lifetime.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from ..config import DockConfig
from .base import Publisher

logger = logging.getLogger(__name__)

QOS_FIRE_AND_FORGET = 0


class MqttPublisher(Publisher):
    """Fire-and-forget MQTT publisher for one topic.

    Example:
        >>> publisher = MqttPublisher("localhost", 1883, "BORUS/extf")
        >>> publisher.start()
        >>> publisher.wait_until_connected(5.0)
        True
        >>> publisher.publish('{"timestamp_ms":1000,...}')
        True
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic: str,
        client_id: str = "wearable-dock",
        keepalive: int = 60,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_factory: Optional[Callable[..., mqtt.Client]] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.keepalive = keepalive
        self.username = username
        self.password = password

        self._client_factory = client_factory or mqtt.Client
        self._client: Optional[mqtt.Client] = None
        self._connected = False

    @classmethod
    def from_config(cls, config: DockConfig) -> MqttPublisher:
        return cls(
            broker_host=config.broker_host,
            broker_port=config.broker_port,
            topic=config.topic,
            client_id=config.client_id,
            keepalive=config.broker_keepalive,
            username=config.username,
            password=config.password,
        )

    def start(self) -> None:
        if self._client is not None:
            return

        client = self._client_factory(
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        if self.username:
            client.username_pw_set(self.username, self.password)

        logger.info(f"Connecting to MQTT broker {self.broker_host}:{self.broker_port}")
        client.connect_async(self.broker_host, self.broker_port, keepalive=self.keepalive)
        client.loop_start()
        self._client = client

    def stop(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        self._connected = False
        client.loop_stop()
        client.disconnect()
        logger.info("MQTT session closed")

    def is_connected(self) -> bool:
        return self._connected

    def publish(self, payload: str) -> bool:
        if self._client is None:
            return False
        try:
            info = self._client.publish(self.topic, payload, qos=QOS_FIRE_AND_FORGET, retain=False)
        except ValueError as e:
            logger.error(f"Rejected payload for {self.topic}: {e}")
            return False
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"Publish to {self.topic} failed: {mqtt.error_string(info.rc)}")
            return False
        return True

    # paho callbacks (run in paho's network thread)

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        if rc == 0:
            self._connected = True
            logger.info("Connected to MQTT broker")
        else:
            self._connected = False
            logger.error(f"MQTT connection refused: {rc}")

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        self._connected = False
        logger.warning(f"Disconnected from MQTT broker ({rc})")
