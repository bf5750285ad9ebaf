"""MQTT publisher for cached blood pressure readings.

Subscribes to the application's notification bus and mirrors the latest
reading and the logging streak to an MQTT broker for home automation
systems (Home Assistant, OpenHAB, etc.).
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.properties import Properties
from paho.mqtt.reasoncodes import ReasonCode

from src.models import Reading, StreakData

if TYPE_CHECKING:
    from src.session import AppContext

logger = logging.getLogger(__name__)

# Default MQTT settings
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1883
DEFAULT_BASE_TOPIC = "bp_buddy/readings"


class MQTTPublisher:
    """Publish reading-cache changes to an MQTT broker.

    Features:
    - JSON payloads, QoS 1
    - Retained messages for last-known-value
    - Per-user topics
    - Only publishes when the latest reading or streak actually changed
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        username: str | None = None,
        password: str | None = None,
        base_topic: str = DEFAULT_BASE_TOPIC,
        client_id: str | None = None,
    ):
        """Initialize MQTT publisher.

        Args:
            host: MQTT broker hostname/IP
            port: MQTT broker port
            username: Optional authentication username
            password: Optional authentication password
            base_topic: Base topic for all messages
            client_id: Optional client ID (auto-generated if not provided)
        """
        self.host = host
        self.port = port
        self.base_topic = base_topic
        self._username = username
        self._password = password

        client_id = client_id or f"bp-buddy-{datetime.now().timestamp():.0f}"
        self._client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=client_id,
        )

        if username and password:
            self._client.username_pw_set(username, password)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_publish = self._on_publish

        self._connected = False
        self._last_error: str | None = None
        self._last_reading_id: str | None = None
        self._last_streak: StreakData | None = None

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: mqtt.ConnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        """Callback when connected to broker."""
        if reason_code == mqtt.CONNACK_ACCEPTED or reason_code.is_failure is False:
            self._connected = True
            self._last_error = None
            logger.info(f"Connected to MQTT broker {self.host}:{self.port}")
        else:
            self._connected = False
            self._last_error = str(reason_code)
            logger.error(f"MQTT connection failed: {reason_code}")

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: mqtt.DisconnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        self._connected = False
        if reason_code != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"MQTT disconnected unexpectedly: {reason_code}")
        else:
            logger.info("Disconnected from MQTT broker")

    def _on_publish(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        _reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        logger.debug(f"MQTT message {mid} published")

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect to MQTT broker.

        Args:
            timeout: Connection timeout in seconds

        Returns:
            True if connection successful
        """
        try:
            self._client.connect(self.host, self.port, keepalive=60)
            self._client.loop_start()

            start = time.time()
            while not self._connected and (time.time() - start) < timeout:
                time.sleep(0.1)

            if not self._connected:
                logger.error(
                    f"MQTT connection timeout after {timeout}s. Last error: {self._last_error}"
                )
                return False

            return True

        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            self._last_error = str(e)
            return False

    def disconnect(self) -> None:
        """Disconnect from MQTT broker."""
        try:
            self._client.loop_stop()
            self._client.disconnect()
        except Exception as e:
            logger.warning(f"Error during MQTT disconnect: {e}")
        finally:
            self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_topic(self, user_identifier: str | None = None, suffix: str | None = None) -> str:
        """Build topic path for a user.

        Args:
            user_identifier: User email or id
            suffix: Optional trailing topic level (e.g. "streak")

        Returns:
            Full topic path
        """
        topic = self.base_topic
        if user_identifier:
            # Sanitize for MQTT topic (replace @ and other special chars)
            safe_id = str(user_identifier).replace("@", "_at_").replace(" ", "_").replace("/", "_")
            topic = f"{topic}/{safe_id}"
        if suffix:
            topic = f"{topic}/{suffix}"
        return topic

    def _build_payload(self, reading: Reading) -> dict:
        """Build JSON payload for a reading message."""
        return {
            "id": reading.id,
            "timestamp": reading.timestamp.isoformat(),
            "systolic": reading.systolic,
            "diastolic": reading.diastolic,
            "pulse": reading.pulse,
            "category": reading.category,
            "tags": sorted(reading.tags),
            "confirmed": reading.is_confirmed,
            "published_at": datetime.now().isoformat(),
        }

    def _publish(self, topic: str, payload: dict, retain: bool = True, qos: int = 1) -> bool:
        if not self._connected:
            logger.error("Not connected to MQTT broker")
            return False

        try:
            result = self._client.publish(topic, json.dumps(payload), qos=qos, retain=retain)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                return True
            logger.error(f"Failed to publish: {mqtt.error_string(result.rc)}")
            return False
        except Exception as e:
            logger.error(f"MQTT publish error: {e}")
            return False

    def publish_reading(
        self,
        reading: Reading,
        user_identifier: str | None = None,
        retain: bool = True,
        qos: int = 1,
    ) -> bool:
        """Publish a blood pressure reading.

        Returns:
            True if publish successful
        """
        topic = self._get_topic(user_identifier)
        if self._publish(topic, self._build_payload(reading), retain, qos):
            logger.info(f"Published to {topic}: {reading.systolic}/{reading.diastolic} mmHg")
            return True
        return False

    def publish_streak(
        self,
        streak: StreakData,
        user_identifier: str | None = None,
        retain: bool = True,
    ) -> bool:
        topic = self._get_topic(user_identifier, "streak")
        payload = {**streak.to_dict(), "published_at": datetime.now().isoformat()}
        return self._publish(topic, payload, retain)

    def publish_status(self, status: str, message: str | None = None, retain: bool = True) -> bool:
        """Publish client status message ("online", "offline", ...)."""
        if not self._connected:
            return False

        payload = {
            "status": status,
            "message": message,
            "timestamp": datetime.now().isoformat(),
        }
        return self._publish(f"{self.base_topic}/status", payload, retain)

    def on_change(self, context: AppContext) -> None:
        """Bus listener: publish the latest reading and streak if they changed."""
        if not self._connected or not context.session.is_authenticated:
            return

        user = context.session.user
        user_identifier = user.email if user else None

        latest = context.cache.latest()
        if latest is not None and latest.id != self._last_reading_id:
            if self.publish_reading(latest, user_identifier):
                self._last_reading_id = latest.id

        streak = context.cache.streak()
        if streak != self._last_streak:
            if self.publish_streak(streak, user_identifier):
                self._last_streak = streak

    def attach(self, context: AppContext) -> Callable[[], None]:
        """Subscribe to the context's bus.

        Returns:
            Unsubscribe function
        """
        return context.bus.subscribe(lambda: self.on_change(context))


def create_mqtt_publisher(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    username: str | None = None,
    password: str | None = None,
    base_topic: str = DEFAULT_BASE_TOPIC,
) -> MQTTPublisher:
    """Factory function to create and connect an MQTTPublisher.

    Raises:
        ConnectionError: If connection fails
    """
    publisher = MQTTPublisher(
        host=host,
        port=port,
        username=username,
        password=password,
        base_topic=base_topic,
    )

    if not publisher.connect():
        raise ConnectionError(f"Failed to connect to MQTT broker at {host}:{port}")

    return publisher
