"""MQTT receiver built on paho-mqtt.

Runs on paho's network thread and only writes readings; it never waits on
uploads.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Sequence

import paho.mqtt.client as mqtt
from sqlalchemy.exc import SQLAlchemyError

from ..metrics import MQTT_CONNECTED, MQTT_MESSAGES
from ..persistence import ReadingRepository
from ..persistence.readings import TEMPERATURE_TOPIC
from .parsers import ParseFailure, parse_temperature_message

logger = logging.getLogger(__name__)


class MessageHandler:
    """Turns one MQTT message into a stored reading."""

    def __init__(self, readings: ReadingRepository, source_tz: str):
        self.readings = readings
        self.source_tz = source_tz

    def handle(self, topic: str, text: str) -> Optional[int]:
        if topic == TEMPERATURE_TOPIC:
            parsed = parse_temperature_message(text, self.source_tz)
            if isinstance(parsed, ParseFailure):
                logger.warning("[MQTT] Unparseable temperature message (%s): %r", parsed.reason, text)
                MQTT_MESSAGES.labels(topic=topic, outcome="parse_error").inc()
                return None
            reading_id = self.readings.insert(
                topic=topic,
                chip_id=parsed.chip_id,
                mac_address=parsed.mac_address,
                temperature=parsed.temperature,
                source_ts_ms=parsed.source_ts_ms,
            )
        else:
            reading_id = self.readings.insert(topic=topic, message=text)

        MQTT_MESSAGES.labels(topic=topic, outcome="stored").inc()
        logger.debug("[MQTT] Stored topic=%s id=%d", topic, reading_id)
        return reading_id


class MQTTReceiver:
    def __init__(
        self,
        handler: MessageHandler,
        topics: Sequence[str],
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "telemetry-anchor-receiver",
    ):
        self.handler = handler
        self.topics = list(topics)
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._connected = threading.Event()

        self._messages_received = 0
        self._messages_stored = 0
        self._messages_failed = 0

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def stats(self) -> dict:
        return {
            "connected": self.connected,
            "received": self._messages_received,
            "stored": self._messages_stored,
            "failed": self._messages_failed,
        }

    def start(self, wait_seconds: float = 5.0) -> bool:
        self._client = mqtt.Client(
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        if self.username and self.password:
            self._client.username_pw_set(self.username, self.password)

        logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
        try:
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
        except OSError as e:
            logger.error("[MQTT] Connect failed: %s", e)
            return False

        self._client.loop_start()
        if self._connected.wait(wait_seconds):
            logger.info("[MQTT] Started successfully")
            return True

        # loop keeps reconnecting in the background
        logger.warning("[MQTT] Not connected after %.1fs, continuing in background", wait_seconds)
        return False

    def stop(self) -> None:
        if self._client is not None:
            self._client.loop_stop()
            self._client.disconnect()
        self._connected.clear()
        MQTT_CONNECTED.set(0)
        logger.info(
            "[MQTT] Stopped. Stats: received=%d stored=%d failed=%d",
            self._messages_received,
            self._messages_stored,
            self._messages_failed,
        )

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connected.clear()
            MQTT_CONNECTED.set(0)
            logger.error("[MQTT] Connection failed: %s", reason_code)
            return

        self._connected.set()
        MQTT_CONNECTED.set(1)
        logger.info("[MQTT] Connected to broker")
        for topic in self.topics:
            client.subscribe(topic, qos=1)
            logger.info("[MQTT] Subscribed to %s", topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        MQTT_CONNECTED.set(0)
        logger.warning("[MQTT] Disconnected (%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        self._messages_received += 1
        try:
            text = msg.payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("[MQTT] Non UTF-8 payload on topic=%s", msg.topic)
            MQTT_MESSAGES.labels(topic=msg.topic, outcome="parse_error").inc()
            self._messages_failed += 1
            return

        try:
            stored = self.handler.handle(msg.topic, text)
        except SQLAlchemyError:
            logger.exception("[MQTT] Failed to store message topic=%s", msg.topic)
            MQTT_MESSAGES.labels(topic=msg.topic, outcome="store_error").inc()
            self._messages_failed += 1
            return

        if stored is None:
            self._messages_failed += 1
        else:
            self._messages_stored += 1
