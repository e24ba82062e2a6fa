"""MQTT handler bridging framed packets to a broker."""

import base64
import binascii
import logging
from collections.abc import Callable

import paho.mqtt.client as mqtt

from .config import MqttConfig
from .errors import FramingError
from .protocol import ID_MAX, Frame

logger = logging.getLogger(__name__)

# Reconnection settings
RECONNECT_DELAY_MIN = 1  # seconds
RECONNECT_DELAY_MAX = 120  # seconds


class MqttHandler:
    """
    Publishes received frames and forwards commanded frames.

    Topics:
        {root}/{node_id}/rx/{packet_id:04x}  frames read from the serial link
        {root}/{node_id}/tx/{packet_id:04x}  frames to write to the serial link

    Payloads are base64-encoded.
    """

    def __init__(
        self,
        config: MqttConfig,
        node_id: str,
        on_frame: Callable[[int, bytes], object],
    ) -> None:
        self._config = config
        self._node_id = node_id
        self._on_frame = on_frame
        self._connected = False

        client_id = f"framelink-{node_id}"
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self._client.on_connect = self._handle_connect
        self._client.on_disconnect = self._handle_disconnect
        self._client.on_message = self._handle_message

        # Enable automatic reconnection with exponential backoff
        self._client.reconnect_delay_set(RECONNECT_DELAY_MIN, RECONNECT_DELAY_MAX)

        if config.username:
            self._client.username_pw_set(config.username, config.password)

    @property
    def connected(self) -> bool:
        """Return True if currently connected to broker."""
        return self._connected

    @property
    def _node_topic(self) -> str:
        return f"{self._config.root_topic}/{self._node_id}"

    @property
    def _subscribe_pattern(self) -> str:
        """Topic pattern for frames to transmit."""
        return f"{self._node_topic}/tx/+"

    def rx_topic(self, packet_id: int) -> str:
        """Topic for publishing a frame received from the serial link."""
        return f"{self._node_topic}/rx/{packet_id:04x}"

    def connect(self) -> None:
        """Connect to MQTT broker and start network loop."""
        logger.info(
            "Connecting to MQTT broker %s:%d",
            self._config.broker,
            self._config.port,
        )
        self._client.connect(self._config.broker, self._config.port)
        self._client.loop_start()

    def disconnect(self) -> None:
        """Stop network loop and disconnect from broker."""
        self._client.loop_stop()
        self._client.disconnect()
        logger.info("Disconnected from MQTT broker")

    def publish_frame(self, frame: Frame) -> None:
        """Publish a frame received from the serial link."""
        if not self._connected:
            logger.debug("Cannot publish: not connected to MQTT broker")
            return

        topic = self.rx_topic(frame.id)
        encoded = base64.b64encode(frame.payload).decode("ascii")
        self._client.publish(topic, encoded)
        logger.debug("Published frame to %s: %d bytes", topic, len(frame.payload))

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: object,
        flags: mqtt.ConnectFlags,
        reason_code: mqtt.ReasonCode,
        properties: mqtt.Properties | None,
    ) -> None:
        if reason_code == 0:
            self._connected = True
            logger.info("Connected to MQTT broker")
            # Resubscribe on every connect (handles reconnection)
            client.subscribe(self._subscribe_pattern)
            logger.info("Subscribed to %s", self._subscribe_pattern)
        else:
            self._connected = False
            logger.error("MQTT connection failed: %s", reason_code)

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: object,
        disconnect_flags: mqtt.DisconnectFlags,
        reason_code: mqtt.ReasonCode,
        properties: mqtt.Properties | None,
    ) -> None:
        self._connected = False
        if reason_code == 0:
            logger.info("Disconnected from MQTT broker (clean)")
        else:
            logger.warning(
                "Disconnected from MQTT broker: %s (will reconnect)",
                reason_code,
            )

    def _handle_message(
        self,
        client: mqtt.Client,
        userdata: object,
        msg: mqtt.MQTTMessage,
    ) -> None:
        # Extract packet ID from topic: {root}/{node_id}/tx/{packet_id}
        parts = msg.topic.split("/")
        if len(parts) < 2 or parts[-2] != "tx":
            return

        try:
            packet_id = int(parts[-1], 16)
        except ValueError:
            logger.warning("Invalid packet ID in topic %s", msg.topic)
            return
        if not 0 <= packet_id <= ID_MAX:
            logger.warning("Packet ID out of range in topic %s", msg.topic)
            return

        try:
            payload = base64.b64decode(msg.payload, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Failed to decode base64 payload from %s", msg.topic)
            return

        logger.debug(
            "Received frame 0x%04x from MQTT: %d bytes",
            packet_id,
            len(payload),
        )
        try:
            self._on_frame(packet_id, payload)
        except FramingError as e:
            logger.warning("Cannot frame packet 0x%04x: %s", packet_id, e)
